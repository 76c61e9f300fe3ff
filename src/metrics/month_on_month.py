"""
Independent month-on-month summary across every entity.

One row per calendar month over a trailing window (24 months by default),
unaffected by page filters.
"""
import pandas as pd
from typing import Dict, Optional

from src.config import config
from src.metrics.growth import growth_series
from src.metrics.leads import converted_mask

# entity -> (date column, {output column: (source column, aggregation)})
MONTHLY_AGGREGATIONS = {
    "sales": ("payment_date", {
        "total_revenue": ("payment_value", "sum"),
        "total_sales_count": ("payment_value", "size"),
        "total_discounts": ("discount_amount", "sum"),
    }),
    "sessions": ("date", {
        "total_sessions": ("session_id", "size"),
        "total_attendance": ("checked_in_count", "sum"),
    }),
    "new_clients": ("first_visit_date", {
        "new_clients": ("member_id", "size"),
    }),
    "leads": ("created_at", {
        "total_leads": ("id", "size"),
        "converted_leads": ("_converted", "sum"),
    }),
    "payroll": ("month_start", {
        "total_payroll": ("total_paid", "sum"),
    }),
    "expirations": ("end_date", {
        "total_expirations": ("member_id", "size"),
    }),
    "checkins": ("date_ist", {
        "late_cancellations": ("is_late_cancelled", "sum"),
    }),
}

SUMMARY_COLUMNS = [
    col for _, (_, aggs) in MONTHLY_AGGREGATIONS.items() for col in aggs
]


def _monthly(df: pd.DataFrame, entity: str) -> pd.DataFrame:
    date_col, aggs = MONTHLY_AGGREGATIONS[entity]
    if df is None or df.empty or date_col not in df.columns:
        empty = {"month_key": pd.Series(dtype="datetime64[ns]")}
        empty.update({col: pd.Series(dtype=float) for col in aggs})
        return pd.DataFrame(empty)

    work = df.copy()
    if entity == "leads":
        work["_converted"] = converted_mask(work).astype(int)
    if entity == "checkins":
        work["is_late_cancelled"] = work["is_late_cancelled"].astype(bool).astype(int)

    work["month_key"] = pd.to_datetime(work[date_col], errors="coerce").dt.to_period("M").dt.to_timestamp()
    work = work.dropna(subset=["month_key"])
    return work.groupby("month_key").agg(**aggs).reset_index()


def compute_month_on_month(
    frames: Dict[str, pd.DataFrame],
    months: Optional[int] = None,
    anchor=None,
) -> pd.DataFrame:
    """
    Monthly totals for every entity, most recent month first.

    Only the `months` most recent months up to the anchor month (inclusive)
    are kept. Revenue growth vs the prior month is added as revenue_growth_pct.
    """
    months = months or config.month_on_month_window

    merged = None
    for entity in MONTHLY_AGGREGATIONS:
        monthly = _monthly(frames.get(entity), entity)
        merged = monthly if merged is None else merged.merge(monthly, on="month_key", how="outer")

    if merged is None or merged.empty:
        return pd.DataFrame(columns=["month_key", "month_label", "year", "month"] + SUMMARY_COLUMNS)

    merged = merged.fillna(0).sort_values("month_key")

    if anchor is not None:
        anchor_month = pd.Timestamp(anchor).to_period("M").to_timestamp()
        merged = merged[merged["month_key"] <= anchor_month]
    merged = merged.tail(months).reset_index(drop=True)

    merged["revenue_growth_pct"] = growth_series(merged["total_revenue"].to_numpy())
    merged["month_label"] = merged["month_key"].dt.strftime("%B %Y")
    merged["year"] = merged["month_key"].dt.year
    merged["month"] = merged["month_key"].dt.month

    cols = ["month_key", "month_label", "year", "month"] + SUMMARY_COLUMNS + ["revenue_growth_pct"]
    return merged[cols].sort_values("month_key", ascending=False).reset_index(drop=True)
