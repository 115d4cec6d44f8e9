"""
Row → registration record mapping.

Uploaded sheets may carry canonical English headers or the localized (Thai)
headers used by the registration authority's own exports. ``FIELD_SOURCES``
lists, per logical field, the accepted source columns in priority order; add a
locale by appending its header to each list.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional

from regadmin.services.date_normalizer import normalize_date

FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "brand_name": ("brand_name", "ชื่อการค้า"),
    "common_label": ("common_label", "ชื่อสามัญ/สูตร"),
    "registration_no": ("registration_no", "ทะเบียน"),
    "importer": ("importer", "ผู้นำเข้า"),
    "manufacturer_source": ("manufacturer_source", "ผู้ผลิต/แหล่งผลิต"),
    "distributor": ("distributor", "ผู้จำหน่าย"),
    "packed_volume": ("packed_volume", "นำเข้า/แบ่งบรรจุ"),
    "registration_date": ("registration_date", "วันออกทะเบียน"),
    "expiry_date": ("expiry_date", "วันหมดอายุ"),
    "license_no": ("license_no", "ใบอนุญาต"),
}

REQUIRED_FIELDS = ("brand_name", "common_label")
DATE_FIELDS = ("registration_date", "expiry_date")

# Column order used by exports and by the record dicts produced here
RECORD_COLUMNS: tuple[str, ...] = (
    "company_code",
    "brand_name",
    "common_label",
    "registration_no",
    "importer",
    "manufacturer_source",
    "distributor",
    "packed_volume",
    "registration_date",
    "expiry_date",
    "license_no",
)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def pick_value(row: Mapping[str, Any], sources: Iterable[str]) -> Any:
    """Return the first non-blank value among ``sources``, or None."""
    for column in sources:
        value = row.get(column)
        if not _is_blank(value):
            return value
    return None


def to_text(value: Any) -> Optional[str]:
    """Stringify a cell value; integral floats lose their ``.0``."""
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def map_row(row: Mapping[str, Any], company_code: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Map one raw row to a registration record.

    Returns None when brand_name or common_label is empty after trimming.
    """
    record: dict[str, Any] = {"company_code": company_code}

    for field, sources in FIELD_SOURCES.items():
        raw = pick_value(row, sources)
        if field in DATE_FIELDS:
            record[field] = normalize_date(raw)
        elif field in REQUIRED_FIELDS:
            record[field] = (to_text(raw) or "").strip()
        else:
            record[field] = to_text(raw)

    if not all(record[field] for field in REQUIRED_FIELDS):
        return None
    return record


def map_rows(
    rows: Iterable[Mapping[str, Any]], company_code: Optional[str]
) -> list[dict[str, Any]]:
    """Map rows, silently dropping the ones missing mandatory fields."""
    mapped = []
    for row in rows:
        record = map_row(row, company_code)
        if record is not None:
            mapped.append(record)
    return mapped
