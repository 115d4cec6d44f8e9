"""
Registration import pipeline.

Parses an uploaded CSV or workbook, maps every row to a registration record,
optionally empties the target scope (replace mode) and inserts the records in
fixed-size batches. A failing batch is reported in the results and the
remaining batches still run.

Replace mode is not atomic: the scope is deleted first, then batches are
inserted one after another. A batch failure after the delete leaves those
records missing.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from io import BytesIO
from typing import Any, Mapping, Sequence

import pandas as pd

from regadmin.clients.backend_client import BackendClient, BackendError
from regadmin.repositories import registration_repo
from regadmin.services.record_mapper import map_rows

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500

_XLS_MAGIC = b"\xD0\xCF\x11\xE0"


# =============================================================================
# Custom Exceptions
# =============================================================================


class UploadParseError(ValueError):
    """Raised when an uploaded file cannot be read as CSV or a workbook."""

    pass


# =============================================================================
# Results
# =============================================================================


@dataclass
class ImportResults:
    """Outcome of an import run. Errors are per failed batch, not per row."""

    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Parsing
# =============================================================================


def _read_csv(data: bytes) -> pd.DataFrame:
    return pd.read_csv(
        BytesIO(data),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )


def _read_workbook(data: bytes) -> pd.DataFrame:
    engine = "xlrd" if data.startswith(_XLS_MAGIC) else "openpyxl"
    df = pd.read_excel(BytesIO(data), sheet_name=0, dtype=object, engine=engine)
    return df.fillna("")


def parse_upload(filename: str, data: bytes) -> list[dict[str, Any]]:
    """
    Parse an uploaded file into rows keyed by header name.

    ``.csv`` files are read as delimited text; any other extension is read as
    a workbook (first sheet only) with missing cells as empty strings.

    Raises:
        UploadParseError: the file is empty or unreadable
    """
    if not data:
        raise UploadParseError("Uploaded file is empty")

    is_csv = (filename or "").lower().endswith(".csv")
    try:
        df = _read_csv(data) if is_csv else _read_workbook(data)
    except pd.errors.EmptyDataError:
        return []
    except Exception as exc:
        kind = "CSV" if is_csv else "spreadsheet"
        raise UploadParseError(f"Failed to parse {kind} file: {exc}") from exc

    df.columns = [str(col).strip() for col in df.columns]
    return df.to_dict(orient="records")


# =============================================================================
# Import
# =============================================================================


def chunked(records: Sequence[Any], size: int) -> list[Sequence[Any]]:
    """Split ``records`` into consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [records[i:i + size] for i in range(0, len(records), size)]


def import_records(
    client: BackendClient,
    records: Sequence[dict[str, Any]],
    company_code: str,
    replace: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ImportResults:
    """
    Persist already-mapped records batch by batch.

    Raises:
        BackendError: the replace-mode delete failed (nothing is inserted)
    """
    results = ImportResults(total=len(records))

    if replace:
        registration_repo.delete_by_company_code(client, company_code)
        logger.info("Cleared scope before import", extra={"company_code": company_code})

    for batch_no, batch in enumerate(chunked(records, chunk_size), start=1):
        try:
            registration_repo.insert_registrations(client, batch)
        except BackendError as exc:
            results.failed += len(batch)
            results.errors.append(exc.message)
            logger.warning(
                "Import batch failed",
                extra={
                    "company_code": company_code,
                    "batch": batch_no,
                    "size": len(batch),
                    "error": exc.message,
                },
            )
        else:
            results.success += len(batch)

    return results


def run_import(
    client: BackendClient,
    rows: Sequence[Mapping[str, Any]],
    company_code: str,
    replace: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ImportResults:
    """Map raw rows and import the surviving records into ``company_code``."""
    records = map_rows(rows, company_code)
    results = import_records(client, records, company_code, replace, chunk_size)

    logger.info(
        "Import finished",
        extra={
            "company_code": company_code,
            "replace": replace,
            "rows": len(rows),
            "total": results.total,
            "success": results.success,
            "failed": results.failed,
        },
    )
    return results
