"""
Sales metrics pack.

Single source of truth for: net revenue, units, transactions, unique members,
ATV, average spend per member, discount value, discount %, VAT.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, add_month_key

DATE_COL = "payment_date"


def unique_count(series: pd.Series) -> int:
    """Distinct non-blank values."""
    if series is None or series.empty:
        return 0
    values = series.dropna().astype(str).str.strip()
    return int(values[values != ""].nunique())


def member_keys(df: pd.DataFrame) -> pd.Series:
    """Member ID, falling back to customer email."""
    member = df["member_id"].fillna("").astype(str).str.strip()
    email = df.get("customer_email", pd.Series("", index=df.index)).fillna("").astype(str).str.strip()
    return member.where(member != "", email)


def compute_sales_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Headline sales totals for a frame.

    - net_revenue: Σ (payment_value - payment_vat)
    - units: distinct sale_item_id
    - transactions: distinct payment_transaction_id
    - members: distinct member (ID or email)
    - atv / asv: net revenue per transaction / per member
    - discount_pct: discount / (gross + discount) * 100
    """
    if df is None or df.empty:
        return {
            "net_revenue": 0.0, "gross_revenue": 0.0, "vat": 0.0, "discount": 0.0,
            "units": 0, "transactions": 0, "members": 0,
            "atv": 0.0, "asv": 0.0, "discount_pct": 0.0,
        }

    gross = float(df["payment_value"].sum())
    vat = float(df["payment_vat"].sum())
    net = gross - vat
    discount = float(df["discount_amount"].sum())
    transactions = unique_count(df["payment_transaction_id"])
    members = unique_count(member_keys(df))

    return {
        "net_revenue": net,
        "gross_revenue": gross,
        "vat": vat,
        "discount": discount,
        "units": unique_count(df["sale_item_id"]),
        "transactions": transactions,
        "members": members,
        "atv": net / transactions if transactions > 0 else 0.0,
        "asv": net / members if members > 0 else 0.0,
        "discount_pct": discount / (gross + discount) * 100 if (gross + discount) > 0 else 0.0,
    }


def _total(key: str):
    return lambda df: compute_sales_totals(df)[key]


SALES_CARD_SPECS = [
    CardSpec("Sales Revenue", _total("net_revenue"), "currency", "Total sales revenue across all transactions"),
    CardSpec("Units Sold", _total("units"), "count", "Total number of units/items sold"),
    CardSpec("Transactions", _total("transactions"), "count", "Number of completed transactions"),
    CardSpec("Unique Members", _total("members"), "count", "Individual customers who made purchases"),
    CardSpec("Avg Transaction Value", _total("atv"), "currency", "Average revenue per transaction"),
    CardSpec("Avg Spend per Member", _total("asv"), "currency", "Average revenue per unique member"),
    CardSpec("Discount Value", _total("discount"), "currency", "Total discounts given", invert=True),
    CardSpec("Discount %", _total("discount_pct"), "percent", "Discount as a share of gross plus discount", invert=True),
    CardSpec("VAT", _total("vat"), "currency", "Total VAT collected"),
]


def sales_metric_cards(df: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                       date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if df is None or df.empty:
        return []
    return windowed_cards(df, SALES_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_sales_breakdown(df: pd.DataFrame, dimension: str) -> pd.DataFrame:
    """
    Sales totals per value of `dimension`, sorted by net revenue.

    Adds share_pct: the group's share of net revenue.
    """
    if df is None or df.empty or dimension not in df.columns:
        return pd.DataFrame()

    keyed = df.copy()
    keyed[dimension] = keyed[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in keyed.groupby(dimension):
        totals = compute_sales_totals(group)
        totals[dimension] = value
        rows.append(totals)

    result = pd.DataFrame(rows)
    total_net = result["net_revenue"].sum()
    result["share_pct"] = np.where(total_net != 0, result["net_revenue"] / total_net * 100, 0)

    cols = [dimension] + [c for c in result.columns if c != dimension]
    return result[cols].sort_values("net_revenue", ascending=False).reset_index(drop=True)


def compute_sales_trend(df: pd.DataFrame, group_keys: Optional[List[str]] = None) -> pd.DataFrame:
    """Monthly net revenue, transactions and members (optionally per group)."""
    if df is None or df.empty:
        return pd.DataFrame()

    keyed = add_month_key(df, DATE_COL).dropna(subset=["month_key"])
    keys = ["month_key"] + (group_keys or [])

    rows = []
    for key, group in keyed.groupby(keys):
        key = key if isinstance(key, tuple) else (key,)
        row = dict(zip(keys, key))
        row.update(compute_sales_totals(group))
        rows.append(row)

    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values(keys).reset_index(drop=True)


def sales_month_on_month(df: pd.DataFrame, dimension: str, metric: str = "net_revenue",
                         months: Optional[int] = None) -> pd.DataFrame:
    """
    Pivot of `metric` by `dimension` (rows) and month (columns).

    Columns are "Mon YYYY" labels in calendar order; `months` keeps only the
    most recent N.
    """
    trend = compute_sales_trend(df, [dimension])
    if trend.empty:
        return pd.DataFrame()

    pivot = trend.pivot_table(index=dimension, columns="month_key", values=metric, aggfunc="sum", fill_value=0)
    pivot = pivot.reindex(sorted(pivot.columns), axis=1)
    if months:
        pivot = pivot.iloc[:, -months:]
    pivot.columns = [pd.Timestamp(c).strftime("%b %Y") for c in pivot.columns]
    pivot["Total"] = pivot.sum(axis=1)
    return pivot.sort_values("Total", ascending=False)
