"""
Class session metrics pack.

Single source of truth for: sessions, check-ins, capacity, fill rate, class
averages, late cancellations, revenue and per-session scores.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, add_month_key

DATE_COL = "date"

# Composite score weights: fill rate, revenue per check-in, class average
SCORE_WEIGHTS = (0.5, 0.3, 0.2)


def compute_session_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Totals over a sessions frame.

    - fill_rate: check-ins / capacity * 100
    - class_average_incl_empty: check-ins / all sessions
    - class_average_excl_empty: check-ins / sessions with at least one check-in
    """
    if df is None or df.empty:
        return {
            "sessions": 0, "empty_sessions": 0, "checkins": 0.0, "capacity": 0.0, "booked": 0.0,
            "late_cancellations": 0.0, "revenue": 0.0, "fill_rate": 0.0,
            "class_average_incl_empty": 0.0, "class_average_excl_empty": 0.0,
            "revenue_per_checkin": 0.0,
        }

    sessions = len(df)
    checkins = float(df["checked_in_count"].sum())
    capacity = float(df["capacity"].sum())
    non_empty = int((df["checked_in_count"] > 0).sum())
    revenue = float(df["total_paid"].sum())

    return {
        "sessions": sessions,
        "empty_sessions": sessions - non_empty,
        "checkins": checkins,
        "capacity": capacity,
        "booked": float(df["booked_count"].sum()),
        "late_cancellations": float(df["late_cancelled_count"].sum()),
        "revenue": revenue,
        "fill_rate": checkins / capacity * 100 if capacity > 0 else 0.0,
        "class_average_incl_empty": checkins / sessions,
        "class_average_excl_empty": checkins / non_empty if non_empty > 0 else 0.0,
        "revenue_per_checkin": revenue / checkins if checkins > 0 else 0.0,
    }


def _total(key: str):
    return lambda df: compute_session_totals(df)[key]


SESSION_CARD_SPECS = [
    CardSpec("Total Sessions", _total("sessions"), "count", "Classes held in the period"),
    CardSpec("Total Check-ins", _total("checkins"), "count", "Members who attended"),
    CardSpec("Capacity", _total("capacity"), "count", "Total spots offered"),
    CardSpec("Fill Rate", _total("fill_rate"), "percent", "Check-ins as a share of capacity"),
    CardSpec("Class Avg (All)", _total("class_average_incl_empty"), "decimal", "Check-ins per session, empty classes included"),
    CardSpec("Class Avg (Non-empty)", _total("class_average_excl_empty"), "decimal", "Check-ins per session that had attendance"),
    CardSpec("Late Cancellations", _total("late_cancellations"), "count", "Bookings cancelled late", invert=True),
    CardSpec("Session Revenue", _total("revenue"), "currency", "Revenue attributed to sessions"),
]


def session_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                         date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, SESSION_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_session_scores(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-session scores.

    - fill_rate: check-ins / capacity (check-ins / bookings when capacity is 0)
    - cancellation_rate: (bookings - check-ins) / bookings
    - class_avg: check-ins (bookings when there are none)
    - rev_per_checkin / rev_per_booking
    - composite_score: 0.5 * fill_rate + 0.3 * rev_per_checkin + 0.2 * class_avg

    Rates here are fractions (0..1), not percentages.
    """
    if df is None or df.empty:
        return pd.DataFrame()

    result = df.copy()
    capacity = result["capacity"].astype(float)
    bookings = result["booked_count"].astype(float)
    checkins = result["checked_in_count"].astype(float)
    revenue = result["total_paid"].astype(float)

    with np.errstate(divide="ignore", invalid="ignore"):
        result["fill_rate"] = np.where(
            capacity > 0, checkins / capacity,
            np.where(bookings > 0, checkins / bookings, 0.0),
        )
        result["cancellation_rate"] = np.where(bookings > 0, (bookings - checkins) / bookings, 0.0)
        result["class_avg"] = np.where(checkins > 0, checkins, bookings)
        result["rev_per_checkin"] = np.where(checkins > 0, revenue / checkins, 0.0)
        result["rev_per_booking"] = np.where(bookings > 0, revenue / bookings, 0.0)

    w_fill, w_rev, w_avg = SCORE_WEIGHTS
    result["composite_score"] = (
        result["fill_rate"] * w_fill
        + result["rev_per_checkin"] * w_rev
        + result["class_avg"] * w_avg
    )
    return result


def compute_session_performance(df: pd.DataFrame, dimension: str = "cleaned_class") -> pd.DataFrame:
    """
    Session totals per `dimension` (class, location, trainer, day, time).

    Adds the mean composite score of the group's sessions.
    """
    if df is None or df.empty or dimension not in df.columns:
        return pd.DataFrame()

    scored = compute_session_scores(df)
    scored[dimension] = scored[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in scored.groupby(dimension):
        totals = compute_session_totals(group)
        totals[dimension] = value
        totals["composite_score"] = float(group["composite_score"].mean())
        rows.append(totals)

    result = pd.DataFrame(rows)
    cols = [dimension] + [c for c in result.columns if c != dimension]
    return result[cols].sort_values("checkins", ascending=False).reset_index(drop=True)


def rank_sessions(df: pd.DataFrame, by: str = "composite_score", n: int = 10,
                  ascending: bool = False) -> pd.DataFrame:
    """Top (or bottom) `n` sessions by a score column."""
    scored = compute_session_scores(df)
    if scored.empty:
        return scored
    cols = [
        "date", "session_name", "trainer_name", "location", "capacity",
        "checked_in_count", "fill_rate", "rev_per_checkin", "composite_score",
    ]
    cols = [c for c in cols if c in scored.columns]
    return scored.sort_values(by, ascending=ascending).head(n)[cols].reset_index(drop=True)


def compute_session_trend(df: pd.DataFrame, group_keys: Optional[List[str]] = None) -> pd.DataFrame:
    """Monthly session totals (optionally per group)."""
    if df is None or df.empty:
        return pd.DataFrame()

    keyed = add_month_key(df, DATE_COL).dropna(subset=["month_key"])
    keys = ["month_key"] + (group_keys or [])
    rows = []
    for key, group in keyed.groupby(keys):
        key = key if isinstance(key, tuple) else (key,)
        row = dict(zip(keys, key))
        row.update(compute_session_totals(group))
        rows.append(row)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values(keys).reset_index(drop=True)
