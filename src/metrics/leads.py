"""
Lead funnel metrics, windowed on created_at.

A lead is converted when conversion_status is "Converted" or its stage
mentions a conversion keyword. Stage and status are filled in by hand and
often disagree, so both are checked.
"""
import pandas as pd
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, add_month_key

DATE_COL = "created_at"

CONVERSION_STAGE_KEYWORDS = [
    "membership sold",
    "converted",
    "conversion",
    "member",
    "membership",
    "sold",
]


def _stage(df: pd.DataFrame) -> pd.Series:
    return df["stage"].fillna("").astype(str).str.lower()


def converted_mask(df: pd.DataFrame) -> pd.Series:
    """Unified conversion rule over a leads frame."""
    by_status = df["conversion_status"].fillna("").astype(str).str.strip() == "Converted"
    stage = _stage(df)
    by_stage = pd.Series(False, index=df.index)
    for keyword in CONVERSION_STAGE_KEYWORDS:
        by_stage |= stage.str.contains(keyword, regex=False)
    return by_status | by_stage


def is_lead_converted(lead: dict) -> bool:
    """Unified conversion rule for a single lead record/dict."""
    if str(lead.get("conversion_status", "")).strip() == "Converted":
        return True
    stage = str(lead.get("stage", "") or "").lower()
    return any(keyword in stage for keyword in CONVERSION_STAGE_KEYWORDS)


def display_status(df: pd.DataFrame) -> pd.Series:
    """Converted / Lost / the raw stage / In Progress."""
    converted = converted_mask(df)
    lost = (df["conversion_status"].fillna("").astype(str).str.strip() == "Lost") | _stage(df).str.contains("lost", regex=False)
    stage = df["stage"].fillna("").astype(str).str.strip()

    status = stage.where(stage != "", "In Progress")
    status = status.where(~lost, "Lost")
    return status.where(~converted, "Converted")


def conversion_inconsistencies(df: pd.DataFrame) -> pd.DataFrame:
    """Leads whose stage indicates conversion but whose status is not Converted."""
    if df is None or df.empty:
        return pd.DataFrame(columns=["id", "full_name", "stage", "conversion_status", "issue"])

    by_status = df["conversion_status"].fillna("").astype(str).str.strip() == "Converted"
    flagged = df[converted_mask(df) & ~by_status]
    result = flagged[["id", "full_name", "stage", "conversion_status"]].copy()
    result["issue"] = 'Stage indicates conversion but conversion status is not "Converted"'
    return result.reset_index(drop=True)


def compute_lead_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Lead funnel totals.

    - conversion_rate: converted / all leads * 100
    - avg_ltv: mean LTV across converted leads
    - avg_visits: mean visits across all leads
    """
    if df is None or df.empty:
        return {
            "leads": 0, "converted": 0, "conversion_rate": 0.0, "lost": 0,
            "avg_ltv": 0.0, "total_ltv": 0.0, "avg_visits": 0.0, "trials": 0,
        }

    converted = converted_mask(df)
    n_converted = int(converted.sum())
    total = len(df)
    statuses = display_status(df)
    trials = df["trial_status"].fillna("").astype(str).str.strip()

    return {
        "leads": total,
        "converted": n_converted,
        "conversion_rate": n_converted / total * 100,
        "lost": int((statuses == "Lost").sum()),
        "avg_ltv": float(df.loc[converted, "ltv"].mean()) if n_converted > 0 else 0.0,
        "total_ltv": float(df["ltv"].sum()),
        "avg_visits": float(df["visits"].mean()),
        "trials": int((trials != "").sum()),
    }


def _total(key: str):
    return lambda df: compute_lead_totals(df)[key]


LEAD_CARD_SPECS = [
    CardSpec("Total Leads", _total("leads"), "count", "Leads created in the period"),
    CardSpec("Converted Leads", _total("converted"), "count", "Leads that became paying members"),
    CardSpec("Lead Conversion Rate", _total("conversion_rate"), "percent", "Converted as a share of all leads"),
    CardSpec("Average LTV", _total("avg_ltv"), "currency", "Average lifetime value of converted leads"),
    CardSpec("Average Visits", _total("avg_visits"), "decimal", "Average visits per lead"),
    CardSpec("Lost Leads", _total("lost"), "count", "Leads marked lost", invert=True),
]


def lead_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                      date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, LEAD_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_lead_funnel(df: pd.DataFrame, dimension: str = "source") -> pd.DataFrame:
    """Funnel totals per `dimension` (source, channel, stage, center, associate)."""
    if df is None or df.empty or dimension not in df.columns:
        return pd.DataFrame()

    keyed = df.copy()
    keyed[dimension] = keyed[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in keyed.groupby(dimension):
        totals = compute_lead_totals(group)
        totals[dimension] = value
        rows.append(totals)

    result = pd.DataFrame(rows)
    cols = [dimension] + [c for c in result.columns if c != dimension]
    return result[cols].sort_values("leads", ascending=False).reset_index(drop=True)


def compute_lead_trend(df: pd.DataFrame) -> pd.DataFrame:
    """Lead totals per created month."""
    if df is None or df.empty:
        return pd.DataFrame()

    keyed = add_month_key(df, DATE_COL).dropna(subset=["month_key"])
    rows = []
    for month, group in keyed.groupby("month_key"):
        totals = compute_lead_totals(group)
        totals["month_key"] = month
        rows.append(totals)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values("month_key").reset_index(drop=True)
