"""
Recurring class slot metrics pack.

A slot is a class that repeats at the same location, day and time. Each row
of the Recurring sheet is one session of a slot; the Teacher Recurring sheet
has the same layout split by trainer. Session-level totals reuse the sessions
pack with `revenue` in place of `total_paid`.
"""
import pandas as pd
from typing import Optional, List, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH
from src.metrics.sessions import compute_session_totals

DATE_COL = "date"
SLOT_KEYS = ["cleaned_class", "location", "day_of_week", "time"]


def _as_sessions(df: pd.DataFrame) -> pd.DataFrame:
    if "total_paid" in df.columns or "revenue" not in df.columns:
        return df
    return df.rename(columns={"revenue": "total_paid"})


def _clean_keys(df: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    df = df.copy()
    for key in keys:
        df[key] = df[key].fillna("").astype(str).str.strip().replace("", "Unknown")
    return df


def count_slots(df: pd.DataFrame, keys: Optional[List[str]] = None) -> int:
    """Distinct recurring slots in the frame."""
    keys = keys or SLOT_KEYS
    if df is None or df.empty or any(k not in df.columns for k in keys):
        return 0
    return len(_clean_keys(df, keys).drop_duplicates(subset=keys))


def compute_slot_performance(
    df: pd.DataFrame,
    keys: Optional[List[str]] = None,
    min_sessions: int = 1,
) -> pd.DataFrame:
    """
    Session totals per slot, best class average first.

    Adds `fill_rate_std` (session-to-session spread of fill %) and the number
    of distinct trainers who taught the slot.
    """
    keys = keys or SLOT_KEYS
    if df is None or df.empty or any(k not in df.columns for k in keys):
        return pd.DataFrame()

    work = _clean_keys(_as_sessions(df), keys)
    rows = []
    for key, group in work.groupby(keys):
        key = key if isinstance(key, tuple) else (key,)
        if len(group) < min_sessions:
            continue
        row = dict(zip(keys, key))
        row.update(compute_session_totals(group))
        fill = group["fill_percentage"].astype(float) if "fill_percentage" in group.columns else pd.Series(dtype=float)
        row["fill_rate_std"] = float(fill.std(ddof=0)) if len(fill) else 0.0
        if "trainer_name" in group.columns:
            trainers = group["trainer_name"].fillna("").astype(str).str.strip()
            row["trainers"] = int(trainers[trainers != ""].nunique())
        rows.append(row)

    if not rows:
        return pd.DataFrame()
    return (
        pd.DataFrame(rows)
        .sort_values(["class_average_incl_empty", "sessions"], ascending=[False, False])
        .reset_index(drop=True)
    )


def underperforming_slots(
    df: pd.DataFrame,
    fill_threshold: float = 50.0,
    min_sessions: int = 3,
) -> pd.DataFrame:
    """Slots with at least `min_sessions` sessions and a fill rate below the threshold, worst first."""
    slots = compute_slot_performance(df, min_sessions=min_sessions)
    if slots.empty:
        return slots
    low = slots[slots["fill_rate"] < fill_threshold]
    return low.sort_values("fill_rate").reset_index(drop=True)


def compare_trainers_in_slots(trainer_df: pd.DataFrame, min_sessions: int = 1) -> pd.DataFrame:
    """
    Trainer results inside each slot against the slot as a whole.

    `vs_slot_average` is the trainer's class average minus the slot's class
    average; positive means the trainer draws more members to that slot.
    """
    if trainer_df is None or trainer_df.empty or "trainer_name" not in trainer_df.columns:
        return pd.DataFrame()

    by_trainer = compute_slot_performance(trainer_df, keys=SLOT_KEYS + ["trainer_name"], min_sessions=min_sessions)
    if by_trainer.empty:
        return by_trainer

    by_slot = compute_slot_performance(trainer_df)[SLOT_KEYS + ["class_average_incl_empty"]]
    by_slot = by_slot.rename(columns={"class_average_incl_empty": "slot_class_average"})

    result = by_trainer.merge(by_slot, on=SLOT_KEYS, how="left")
    result["vs_slot_average"] = result["class_average_incl_empty"] - result["slot_class_average"]
    cols = SLOT_KEYS + [
        "trainer_name", "sessions", "checkins", "fill_rate",
        "class_average_incl_empty", "slot_class_average", "vs_slot_average", "revenue",
    ]
    return result[cols].sort_values(SLOT_KEYS + ["vs_slot_average"], ascending=[True] * 4 + [False]).reset_index(drop=True)


def _total(key: str):
    return lambda df: compute_session_totals(_as_sessions(df))[key]


RECURRING_CARD_SPECS = [
    CardSpec("Recurring Slots", count_slots, "count", "Class, location, day and time combinations that ran"),
    CardSpec("Recurring Sessions", _total("sessions"), "count", "Sessions held in recurring slots"),
    CardSpec("Slot Check-ins", _total("checkins"), "count", "Members who attended recurring slots"),
    CardSpec("Slot Fill Rate", _total("fill_rate"), "percent", "Check-ins as a share of capacity"),
    CardSpec("Slot Class Avg", _total("class_average_incl_empty"), "decimal", "Check-ins per session, empty classes included"),
    CardSpec("Empty Sessions", _total("empty_sessions"), "count", "Sessions nobody attended", invert=True),
    CardSpec("Slot Revenue", _total("revenue"), "currency", "Revenue from recurring slots"),
]


def recurring_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                           date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, RECURRING_CARD_SPECS, DATE_COL, anchor, mode, date_range)
