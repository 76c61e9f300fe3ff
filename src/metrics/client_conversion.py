"""
New-client conversion and retention metrics, windowed on first visit date.

A client counts as new when `is_new` contains "new" (case-insensitive),
converted when conversion_status is "Converted" and retained when
retention_status is "Retained". Rates are over new clients.
"""
import pandas as pd
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, add_month_key

DATE_COL = "first_visit_date"


def is_new_mask(df: pd.DataFrame) -> pd.Series:
    return df["is_new"].fillna("").astype(str).str.lower().str.contains("new", regex=False)


def is_converted_mask(df: pd.DataFrame) -> pd.Series:
    return df["conversion_status"].fillna("").astype(str).str.strip() == "Converted"


def is_retained_mask(df: pd.DataFrame) -> pd.Series:
    return df["retention_status"].fillna("").astype(str).str.strip() == "Retained"


def compute_conversion_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Funnel totals for a frame of new-client rows.

    - conversion_rate / retention_rate: converted / retained over new clients
    - avg_ltv: mean LTV over all rows
    - avg_conversion_span: mean days from first visit to first purchase (converted only)
    """
    if df is None or df.empty:
        return {
            "new_clients": 0, "converted": 0, "retained": 0, "conversion_rate": 0.0,
            "retention_rate": 0.0, "avg_ltv": 0.0, "total_ltv": 0.0, "avg_conversion_span": 0.0,
        }

    new = int(is_new_mask(df).sum())
    converted_mask = is_converted_mask(df)
    converted = int(converted_mask.sum())
    retained = int(is_retained_mask(df).sum())
    total_ltv = float(df["ltv"].sum())

    spans = df.loc[converted_mask & (df["conversion_span"] > 0), "conversion_span"]

    return {
        "new_clients": new,
        "converted": converted,
        "retained": retained,
        "conversion_rate": converted / new * 100 if new > 0 else 0.0,
        "retention_rate": retained / new * 100 if new > 0 else 0.0,
        "avg_ltv": total_ltv / len(df),
        "total_ltv": total_ltv,
        "avg_conversion_span": float(spans.mean()) if not spans.empty else 0.0,
    }


def _total(key: str):
    return lambda df: compute_conversion_totals(df)[key]


CONVERSION_CARD_SPECS = [
    CardSpec("New Members", _total("new_clients"), "count", "Recently acquired clients"),
    CardSpec("Converted Members", _total("converted"), "count", "Trial to paid conversions"),
    CardSpec("Retained Members", _total("retained"), "count", "Clients who kept coming back"),
    CardSpec("Conversion Rate", _total("conversion_rate"), "percent", "Converted as a share of new clients"),
    CardSpec("Retention Rate", _total("retention_rate"), "percent", "Retained as a share of new clients"),
    CardSpec("Average LTV", _total("avg_ltv"), "currency", "Average lifetime value per client"),
]


def conversion_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                            date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, CONVERSION_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def _grouped_totals(df: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    rows = []
    for key, group in df.groupby(keys):
        key = key if isinstance(key, tuple) else (key,)
        row = dict(zip(keys, key))
        row.update(compute_conversion_totals(group))
        rows.append(row)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows)


def compute_conversion_funnel_by_month(df: pd.DataFrame) -> pd.DataFrame:
    """Funnel totals per first-visit month, oldest first."""
    if df is None or df.empty:
        return pd.DataFrame()
    keyed = add_month_key(df, DATE_COL).dropna(subset=["month_key"])
    result = _grouped_totals(keyed, ["month_key"])
    if result.empty:
        return result
    return result.sort_values("month_key").reset_index(drop=True)


def compute_conversion_breakdown(df: pd.DataFrame, dimension: str = "first_visit_location") -> pd.DataFrame:
    """Funnel totals per `dimension` (location, trainer, membership used ...)."""
    if df is None or df.empty or dimension not in df.columns:
        return pd.DataFrame()

    keyed = df.copy()
    keyed[dimension] = keyed[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")
    result = _grouped_totals(keyed, [dimension])
    return result.sort_values("new_clients", ascending=False).reset_index(drop=True)
