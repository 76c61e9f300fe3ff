"""
Comparison windows for period-over-period metrics.

The default comparison is "last completed month vs the month before": with an
anchor in September 2025 the current window is August 2025 and the previous
window is July 2025. A year-over-year window (August 2024) rides along.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple, Union

import pandas as pd

DateLike = Union[date, datetime, pd.Timestamp, str]

COMPARE_PREVIOUS_MONTH = "previous_month"
COMPARE_PREVIOUS_PERIOD = "previous_period"


def _to_timestamp(value: DateLike) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    return ts.tz_localize(None) if ts.tzinfo is not None else ts


def month_start(value: DateLike) -> pd.Timestamp:
    ts = _to_timestamp(value)
    return pd.Timestamp(year=ts.year, month=ts.month, day=1)


def month_end(value: DateLike) -> pd.Timestamp:
    """Last instant of the month containing `value`."""
    return month_start(value) + pd.offsets.MonthBegin(1) - pd.Timedelta(microseconds=1)


def shift_months(value: DateLike, months: int) -> pd.Timestamp:
    return month_start(value) + pd.DateOffset(months=months)


@dataclass(frozen=True)
class Window:
    start: pd.Timestamp
    end: pd.Timestamp

    def contains(self, value) -> bool:
        if value is None or pd.isna(value):
            return False
        ts = pd.Timestamp(value)
        return self.start <= ts <= self.end

    def label(self) -> str:
        if self.start == month_start(self.start) and self.end == month_end(self.start):
            return self.start.strftime("%b %Y")
        return f"{self.start.strftime('%d %b %Y')} - {self.end.strftime('%d %b %Y')}"


@dataclass(frozen=True)
class ComparisonWindows:
    current: Window
    previous: Window
    year_ago: Window

    @property
    def label(self) -> str:
        return f"{self.current.label()} vs {self.previous.label()}"


def comparison_windows(
    anchor: Optional[DateLike] = None,
    mode: str = COMPARE_PREVIOUS_MONTH,
    date_range: Optional[Tuple[DateLike, DateLike]] = None,
) -> ComparisonWindows:
    """
    Build current / previous / year-ago windows.

    previous_month: current = month before the anchor month (anchor defaults
    to today), previous = the month before that.
    previous_period: current = `date_range` (inclusive days), previous = the
    same number of days immediately before it.
    """
    if mode == COMPARE_PREVIOUS_PERIOD:
        if not date_range:
            raise ValueError("previous_period comparison needs a date_range")
        start = _to_timestamp(date_range[0]).normalize()
        end = _to_timestamp(date_range[1]).normalize() + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
        if end < start:
            raise ValueError("date_range end is before start")
        length = (end.normalize() - start).days + 1
        prev_end = start - pd.Timedelta(microseconds=1)
        prev_start = start - pd.Timedelta(days=length)
        current = Window(start, end)
        previous = Window(prev_start, prev_end)
        year_ago = Window(start - pd.DateOffset(years=1), end - pd.DateOffset(years=1))
        return ComparisonWindows(current, previous, year_ago)

    if mode != COMPARE_PREVIOUS_MONTH:
        raise ValueError(f"Unknown comparison mode '{mode}'")

    anchor_ts = _to_timestamp(anchor if anchor is not None else datetime.now())
    current_start = shift_months(anchor_ts, -1)
    previous_start = shift_months(anchor_ts, -2)
    year_ago_start = shift_months(current_start, -12)

    return ComparisonWindows(
        current=Window(current_start, month_end(current_start)),
        previous=Window(previous_start, month_end(previous_start)),
        year_ago=Window(year_ago_start, month_end(year_ago_start)),
    )


def filter_window(df: pd.DataFrame, date_col: str, window: Window) -> pd.DataFrame:
    """Rows of `df` whose `date_col` falls inside `window`."""
    if df is None or df.empty or date_col not in df.columns:
        return df.iloc[0:0] if df is not None else pd.DataFrame()
    dates = pd.to_datetime(df[date_col], errors="coerce")
    return df[(dates >= window.start) & (dates <= window.end)]


def add_month_key(df: pd.DataFrame, date_col: str, key_col: str = "month_key") -> pd.DataFrame:
    """Add a month-start timestamp column derived from `date_col`."""
    df = df.copy()
    df[key_col] = pd.to_datetime(df[date_col], errors="coerce").dt.to_period("M").dt.to_timestamp()
    return df


def trailing_months(anchor: Optional[DateLike] = None, count: int = 24) -> list:
    """Month starts for the `count` completed months before the anchor, oldest first."""
    anchor_ts = _to_timestamp(anchor if anchor is not None else datetime.now())
    return [shift_months(anchor_ts, -offset) for offset in range(count, 0, -1)]
