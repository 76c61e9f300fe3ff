"""
Cell-level coercion for spreadsheet values.

Sheets hand back strings, numbers, booleans or nothing at all depending on the
render option and on whether a trailing cell is empty. These helpers turn any
of those into the numeric, date and boolean values the records carry.
"""
import math
import re
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

# Day zero of the spreadsheet serial date system
SERIAL_EPOCH = datetime(1899, 12, 30)

_LEADING_FLOAT = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")

_DATETIME_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y, %H:%M:%S",
    "%d-%m-%Y",
    "%d-%m-%Y %H:%M:%S",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%b %Y",
    "%B %Y",
    "%b-%Y",
    "%b-%y",
    "%Y-%m",
]


def parse_numeric_value(value: Any) -> float:
    """
    Parse a numeric cell, falling back to 0.

    Numbers pass through (NaN becomes 0). Strings are stripped of everything
    except digits, '.' and '-', then the leading float is read, so
    '₹1,234.50' -> 1234.5 and '45%' -> 45.0. Empty or non-numeric -> 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return 0.0 if math.isnan(value) or math.isinf(value) else float(value)

    text = str(value).strip()
    if not text:
        return 0.0

    cleaned = _NON_NUMERIC.sub("", text)
    match = _LEADING_FLOAT.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def parse_strict_number(value: Any) -> float:
    """
    Numeric parse that refuses date-like strings.

    Lead sheets occasionally carry dates in numeric columns; anything
    containing '/' or '-' reads as 0 rather than as the day of month.
    """
    if isinstance(value, str) and ("/" in value or "-" in value):
        return 0.0
    return parse_numeric_value(value)


def parse_date_value(value: Any) -> Optional[datetime]:
    """
    Parse a date cell into a naive datetime, or None.

    Handles spreadsheet serial numbers, ISO strings and day-first
    DD/MM/YYYY strings (the studio sheets are day-first).
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, (int, float)):
        if math.isnan(value) or value <= 0:
            return None
        try:
            return SERIAL_EPOCH + timedelta(days=float(value))
        except OverflowError:
            return None

    text = str(value).strip()
    if not text or text == "-":
        return None

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    # Serial numbers rendered as text
    if re.fullmatch(r"\d{5}(?:\.\d+)?", text):
        return parse_date_value(float(text))

    return None


def parse_bool(value: Any) -> bool:
    """TRUE/true/True -> True, anything else -> False."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().upper() == "TRUE"


def normalise_rate(value: float) -> float:
    """Scale fractional rates (0 < r <= 1) to percent."""
    if 0 < value <= 1:
        return value * 100
    return value


def safe_get(row: Sequence[Any], index: int, default: str = "") -> str:
    """Trimmed string cell at `index`, or `default` when missing."""
    if row is None or index < 0 or index >= len(row):
        return default
    cell = row[index]
    if cell is None:
        return default
    text = str(cell).strip()
    return text if text else default


def cell(row: Sequence[Any], index: int) -> Any:
    """Raw cell at `index`, or None when the row is short."""
    if row is None or index < 0 or index >= len(row):
        return None
    return row[index]


def month_key(value: Optional[datetime]) -> str:
    """Canonical YYYY-MM key for a date."""
    if value is None:
        return ""
    return f"{value.year:04d}-{value.month:02d}"


def days_between(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Whole days from start to end, rounded up and floored at 0."""
    if start is None or end is None:
        return 0
    seconds = (end - start).total_seconds()
    return max(0, math.ceil(seconds / 86400))
