"""
Date normalization for imported registration rows.

Spreadsheet cells arrive as native dates, spreadsheet serial numbers or free
text in either year-first or day-first order. Everything is reduced to an ISO
``YYYY-MM-DD`` string; anything that cannot be read as a date becomes None.
"""

from __future__ import annotations

import numbers
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd

# Day 0 of the spreadsheet serial calendar (25569 days before 1970-01-01)
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

_YEAR_FIRST = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")


def _expand_two_digit_year(year: int) -> int:
    if year < 100:
        return year + (1900 if year >= 70 else 2000)
    return year


def _iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _from_serial(serial: float) -> Optional[str]:
    try:
        return (SPREADSHEET_EPOCH + timedelta(days=float(serial))).date().isoformat()
    except (OverflowError, ValueError):
        return None


def normalize_date(value: Any) -> Optional[str]:
    """
    Convert a date-like value to ``YYYY-MM-DD``.

    Examples:
        normalize_date("2024-3-5")  -> "2024-03-05"
        normalize_date("5/3/24")    -> "2024-03-05"
        normalize_date(45000)       -> "2023-03-15"
        normalize_date("soon")      -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, str) and pd.isna(value):
        return None

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, numbers.Real):
        return _from_serial(value)

    text = str(value).strip()
    if not text:
        return None

    match = _YEAR_FIRST.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _iso(year, month, day)

    match = _DAY_FIRST.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _iso(_expand_two_digit_year(year), month, day)

    return None
