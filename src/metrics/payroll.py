"""
Trainer payroll metrics, windowed on the payroll month.

Payroll rows are one trainer x location x month, with per-format blocks for
cycle, strength and barre classes.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH

DATE_COL = "month_start"

FORMATS = ["cycle", "strength", "barre"]


def compute_payroll_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Totals over payroll rows.

    Conversion and retention are weighted by new members
    (Σ converted / Σ new_members), not averaged across rows.
    """
    if df is None or df.empty:
        return {
            "trainers": 0, "sessions": 0.0, "non_empty_sessions": 0.0, "customers": 0.0,
            "paid": 0.0, "class_average": 0.0, "class_average_excl_empty": 0.0,
            "revenue_per_session": 0.0, "utilisation_rate": 0.0, "new_members": 0.0,
            "conversion_rate": 0.0, "retention_rate": 0.0,
        }

    sessions = float(df["total_sessions"].sum())
    non_empty = float(df["total_non_empty_sessions"].sum())
    customers = float(df["total_customers"].sum())
    paid = float(df["total_paid"].sum())
    new_members = float(df["new_members"].sum())
    trainers = df["teacher_name"].fillna("").astype(str).str.strip()

    return {
        "trainers": int(trainers[trainers != ""].nunique()),
        "sessions": sessions,
        "non_empty_sessions": non_empty,
        "customers": customers,
        "paid": paid,
        "class_average": customers / sessions if sessions > 0 else 0.0,
        "class_average_excl_empty": customers / non_empty if non_empty > 0 else 0.0,
        "revenue_per_session": paid / sessions if sessions > 0 else 0.0,
        "utilisation_rate": non_empty / sessions * 100 if sessions > 0 else 0.0,
        "new_members": new_members,
        "conversion_rate": float(df["converted"].sum()) / new_members * 100 if new_members > 0 else 0.0,
        "retention_rate": float(df["retained"].sum()) / new_members * 100 if new_members > 0 else 0.0,
    }


def _total(key: str):
    return lambda df: compute_payroll_totals(df)[key]


PAYROLL_CARD_SPECS = [
    CardSpec("Active Trainers", _total("trainers"), "count", "Trainers who taught in the period"),
    CardSpec("Trainer Revenue", _total("paid"), "currency", "Revenue across trainer-led sessions"),
    CardSpec("Sessions Taught", _total("sessions"), "count", "Sessions across all formats"),
    CardSpec("Customers", _total("customers"), "count", "Customers across all sessions"),
    CardSpec("Class Average", _total("class_average"), "decimal", "Customers per session, empty classes included"),
    CardSpec("Conversion Rate", _total("conversion_rate"), "percent", "Converted over new members, weighted"),
    CardSpec("Retention Rate", _total("retention_rate"), "percent", "Retained over new members, weighted"),
]


def payroll_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                         date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, PAYROLL_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_trainer_summary(df: pd.DataFrame, group_keys: Optional[List[str]] = None) -> pd.DataFrame:
    """Per-trainer totals (optionally per location), sorted by revenue."""
    if df is None or df.empty:
        return pd.DataFrame()

    keys = group_keys or ["teacher_name"]
    rows = []
    for key, group in df.groupby(keys):
        key = key if isinstance(key, tuple) else (key,)
        row = dict(zip(keys, key))
        row.update(compute_payroll_totals(group))
        row.pop("trainers", None)
        rows.append(row)

    result = pd.DataFrame(rows)
    return result.sort_values("paid", ascending=False).reset_index(drop=True)


def compute_format_mix(df: pd.DataFrame) -> pd.DataFrame:
    """
    Sessions, customers and revenue per class format (cycle/strength/barre).

    Adds each format's share of sessions and of revenue.
    """
    if df is None or df.empty:
        return pd.DataFrame()

    rows = []
    for fmt in FORMATS:
        sessions = float(df[f"{fmt}_sessions"].sum())
        non_empty = float(df[f"non_empty_{fmt}_sessions"].sum())
        customers = float(df[f"{fmt}_customers"].sum())
        rows.append({
            "format": fmt.title(),
            "sessions": sessions,
            "empty_sessions": float(df[f"empty_{fmt}_sessions"].sum()),
            "customers": customers,
            "revenue": float(df[f"{fmt}_paid"].sum()),
            "class_average": customers / sessions if sessions > 0 else 0.0,
            "class_average_excl_empty": customers / non_empty if non_empty > 0 else 0.0,
        })

    result = pd.DataFrame(rows)
    total_sessions = result["sessions"].sum()
    total_revenue = result["revenue"].sum()
    result["session_share_pct"] = np.where(total_sessions > 0, result["sessions"] / total_sessions * 100, 0)
    result["revenue_share_pct"] = np.where(total_revenue > 0, result["revenue"] / total_revenue * 100, 0)
    return result


def compute_payroll_trend(df: pd.DataFrame) -> pd.DataFrame:
    """Monthly payroll totals by month_start."""
    if df is None or df.empty:
        return pd.DataFrame()

    keyed = df.dropna(subset=[DATE_COL])
    rows = []
    for month, group in keyed.groupby(DATE_COL):
        row = {"month_key": pd.Timestamp(month)}
        row.update(compute_payroll_totals(group))
        rows.append(row)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values("month_key").reset_index(drop=True)
