"""
XLSX Export Service.

Serializes the registrations of one scope into a single-sheet workbook with a
fixed column order, so an export can be edited and imported again.
"""

from __future__ import annotations

import re
from io import BytesIO
from typing import Any, Iterable, Mapping
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from regadmin.services.record_mapper import RECORD_COLUMNS

SHEET_TITLE = "registrations"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TABLE_HEADER_FILL = PatternFill(start_color="D9E2F3", end_color="D9E2F3", fill_type="solid")
TABLE_HEADER_FONT = Font(bold=True, size=10, color="1F4E79")

COLUMN_WIDTHS = {
    "company_code": 14,
    "brand_name": 30,
    "common_label": 30,
    "registration_no": 18,
    "importer": 28,
    "manufacturer_source": 28,
    "distributor": 28,
    "packed_volume": 18,
    "registration_date": 16,
    "expiry_date": 16,
    "license_no": 16,
}


def _cell_value(value: Any) -> str:
    if value is None:
        return ""
    # Control characters are not allowed in worksheet XML
    return ILLEGAL_CHARACTERS_RE.sub("", str(value))


def export_rows(records: Iterable[Mapping[str, Any]]) -> list[list[str]]:
    """Header row followed by one row per record; nulls render as ''."""
    rows = [list(RECORD_COLUMNS)]
    for record in records:
        rows.append([_cell_value(record.get(column)) for column in RECORD_COLUMNS])
    return rows


def build_export_workbook(records: Iterable[Mapping[str, Any]]) -> bytes:
    """Build the export workbook and return it as xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    for row in export_rows(records):
        ws.append(row)

    # Values are data, never formulas
    for data_row in ws.iter_rows(min_row=2):
        for cell in data_row:
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"

    for col, column in enumerate(RECORD_COLUMNS, start=1):
        cell = ws.cell(row=1, column=col)
        cell.fill = TABLE_HEADER_FILL
        cell.font = TABLE_HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTHS.get(column, 16)

    ws.freeze_panes = "A2"

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_filename(company_code: str) -> str:
    return f"registrations_{company_code}.xlsx"


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and a UTF-8 filename*."""
    ascii_name = re.sub(r'[^A-Za-z0-9._-]', "_", filename)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"
