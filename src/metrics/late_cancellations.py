"""
Late cancellation metrics, derived from check-in rows.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH
from src.metrics.sales import unique_count

DATE_COL = "date_ist"

BREAKDOWN_DIMENSIONS = {
    "location": "location",
    "class": "cleaned_class",
    "trainer": "teacher_name",
    "day": "day_of_week",
    "time": "time",
    "product": "cleaned_product",
}


def late_cancellation_rows(checkins: pd.DataFrame) -> pd.DataFrame:
    """Check-in rows flagged is_late_cancelled."""
    if checkins is None or checkins.empty:
        return checkins.iloc[0:0] if checkins is not None else pd.DataFrame()
    return checkins[checkins["is_late_cancelled"].astype(bool)].reset_index(drop=True)


def compute_late_cancel_totals(checkins: pd.DataFrame) -> Dict[str, float]:
    """
    Late-cancel totals over all check-in rows.

    - late_cancel_rate: late cancels / all booking rows * 100
    - repeat_offenders: members with more than one late cancel
    """
    if checkins is None or checkins.empty:
        return {
            "late_cancellations": 0, "members": 0, "bookings": 0,
            "late_cancel_rate": 0.0, "repeat_offenders": 0, "per_member": 0.0,
        }

    late = late_cancellation_rows(checkins)
    count = len(late)
    members = unique_count(late["member_id"])
    per_member_counts = late["member_id"].astype(str).str.strip()
    per_member_counts = per_member_counts[per_member_counts != ""].value_counts()

    return {
        "late_cancellations": count,
        "members": members,
        "bookings": len(checkins),
        "late_cancel_rate": count / len(checkins) * 100,
        "repeat_offenders": int((per_member_counts > 1).sum()),
        "per_member": count / members if members > 0 else 0.0,
    }


def _total(key: str):
    return lambda df: compute_late_cancel_totals(df)[key]


LATE_CANCEL_CARD_SPECS = [
    CardSpec("Late Cancellations", _total("late_cancellations"), "count", "Bookings cancelled inside the cut-off", invert=True),
    CardSpec("Members Late Cancelling", _total("members"), "count", "Unique members with a late cancel", invert=True),
    CardSpec("Late Cancel Rate", _total("late_cancel_rate"), "percent", "Late cancels as a share of all bookings", invert=True),
    CardSpec("Repeat Offenders", _total("repeat_offenders"), "count", "Members with more than one late cancel", invert=True),
]


def late_cancel_metric_cards(checkins: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                             date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if checkins is None or checkins.empty:
        return []
    return windowed_cards(checkins, LATE_CANCEL_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_late_cancel_breakdown(checkins: pd.DataFrame, dimension: str = "location") -> pd.DataFrame:
    """
    Late cancels per dimension (location, class, trainer, day, time, product).

    `dimension` may be a key of BREAKDOWN_DIMENSIONS or a column name.
    """
    column = BREAKDOWN_DIMENSIONS.get(dimension, dimension)
    if checkins is None or checkins.empty or column not in checkins.columns:
        return pd.DataFrame()

    keyed = checkins.copy()
    keyed[column] = keyed[column].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in keyed.groupby(column):
        totals = compute_late_cancel_totals(group)
        totals[column] = value
        rows.append(totals)

    result = pd.DataFrame(rows)
    result = result[result["late_cancellations"] > 0]
    if result.empty:
        return pd.DataFrame()

    total = result["late_cancellations"].sum()
    result["share_pct"] = np.where(total > 0, result["late_cancellations"] / total * 100, 0)
    cols = [column] + [c for c in result.columns if c != column]
    return result[cols].sort_values("late_cancellations", ascending=False).reset_index(drop=True)


def top_late_cancellers(checkins: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    """Members with the most late cancels."""
    late = late_cancellation_rows(checkins)
    if late is None or late.empty:
        return pd.DataFrame(columns=["member_id", "name", "email", "late_cancellations"])

    late = late.assign(name=(late["first_name"].fillna("") + " " + late["last_name"].fillna("")).str.strip())
    result = late.groupby("member_id").agg(
        name=("name", "first"),
        email=("email", "first"),
        late_cancellations=("member_id", "size"),
    ).reset_index()
    return result.sort_values("late_cancellations", ascending=False).head(n).reset_index(drop=True)
