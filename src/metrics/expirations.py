"""
Membership expiration metrics, windowed on end_date.
"""
import pandas as pd
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, add_month_key, comparison_windows, filter_window

DATE_COL = "end_date"


def _status(df: pd.DataFrame) -> pd.Series:
    return df["status"].fillna("").astype(str).str.strip().str.lower()


def compute_expiration_totals(df: pd.DataFrame) -> Dict[str, float]:
    """Counts by status, their rates, and the paid value of churned memberships."""
    if df is None or df.empty:
        return {
            "total": 0, "active": 0, "churned": 0, "frozen": 0,
            "active_rate": 0.0, "churn_rate": 0.0, "frozen_rate": 0.0, "revenue_impact": 0.0,
        }

    status = _status(df)
    total = len(df)
    active = int((status == "active").sum())
    churned = int((status == "churned").sum())
    frozen = int((status == "frozen").sum())

    return {
        "total": total,
        "active": active,
        "churned": churned,
        "frozen": frozen,
        "active_rate": active / total * 100,
        "churn_rate": churned / total * 100,
        "frozen_rate": frozen / total * 100,
        "revenue_impact": float(df.loc[status == "churned", "paid"].sum()),
    }


def _total(key: str):
    return lambda df: compute_expiration_totals(df)[key]


EXPIRATION_CARD_SPECS = [
    CardSpec("Total Memberships", _total("total"), "count", "All tracked membership records"),
    CardSpec("Active Members", _total("active"), "count", "Memberships still active"),
    CardSpec("Churned Members", _total("churned"), "count", "Memberships that lapsed without renewal", invert=True),
    CardSpec("Frozen Memberships", _total("frozen"), "count", "Memberships currently on hold"),
    CardSpec("Churned Revenue Impact", _total("revenue_impact"), "currency",
             "Value paid for memberships that churned", invert=True),
]


def expiration_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                            date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    cards = windowed_cards(df, EXPIRATION_CARD_SPECS, DATE_COL, anchor, mode, date_range)

    current = compute_expiration_totals(
        filter_window(df, DATE_COL, comparison_windows(anchor, mode, date_range).current)
    )
    for card in cards:
        if card.title == "Active Members":
            card.description = f"{current['active_rate']:.1f}% of total memberships"
        elif card.title == "Churned Members":
            card.description = f"{current['churn_rate']:.1f}% churn rate"
    return cards


def compute_expiration_breakdown(df: pd.DataFrame, dimension: str = "membership_name") -> pd.DataFrame:
    """Status counts and churn rate per `dimension`, sorted by churned count."""
    if df is None or df.empty or dimension not in df.columns:
        return pd.DataFrame()

    keyed = df.copy()
    keyed[dimension] = keyed[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in keyed.groupby(dimension):
        totals = compute_expiration_totals(group)
        totals[dimension] = value
        rows.append(totals)

    result = pd.DataFrame(rows)
    cols = [dimension] + [c for c in result.columns if c != dimension]
    return result[cols].sort_values(["churned", "total"], ascending=False).reset_index(drop=True)


def compute_expiration_trend(df: pd.DataFrame) -> pd.DataFrame:
    """Monthly status counts by end month."""
    if df is None or df.empty:
        return pd.DataFrame()

    keyed = add_month_key(df, DATE_COL).dropna(subset=["month_key"])
    rows = []
    for month, group in keyed.groupby("month_key"):
        totals = compute_expiration_totals(group)
        totals["month_key"] = month
        rows.append(totals)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values("month_key").reset_index(drop=True)
