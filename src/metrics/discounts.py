"""
Discount metrics pack.

Operates on sales rows; the "discounts" view is the subset with a positive
discount amount.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Tuple

from src.metrics.cards import CardSpec, MetricCard, windowed_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH
from src.metrics.sales import member_keys, unique_count

DATE_COL = "payment_date"


def discount_rows(sales: pd.DataFrame) -> pd.DataFrame:
    """Sales rows with discount_amount > 0."""
    if sales is None or sales.empty:
        return sales.iloc[0:0] if sales is not None else pd.DataFrame()
    return sales[sales["discount_amount"] > 0].reset_index(drop=True)


def compute_discount_totals(df: pd.DataFrame) -> Dict[str, float]:
    """
    Discount totals over all sales rows in `df`.

    - discount_rate: discounts / (revenue + discounts) * 100
    - penetration: discounted transactions / all transactions * 100
    - customer_penetration: customers with a discount / all customers * 100
    """
    if df is None or df.empty:
        return {
            "total_discount": 0.0, "revenue": 0.0, "discount_rate": 0.0,
            "discounted_transactions": 0, "customers_with_discounts": 0,
            "avg_discount_per_transaction": 0.0, "avg_discount_per_customer": 0.0,
            "penetration": 0.0, "customer_penetration": 0.0, "transactions": 0,
        }

    discounted_mask = df["discount_amount"] > 0
    total_discount = float(df["discount_amount"].sum())
    revenue = float(df["payment_value"].sum())
    transactions = len(df)
    discounted = int(discounted_mask.sum())

    keys = member_keys(df)
    customers = unique_count(keys)
    customers_discounted = unique_count(keys[discounted_mask])

    return {
        "total_discount": total_discount,
        "revenue": revenue,
        "discount_rate": total_discount / (revenue + total_discount) * 100 if (revenue + total_discount) > 0 else 0.0,
        "discounted_transactions": discounted,
        "customers_with_discounts": customers_discounted,
        "avg_discount_per_transaction": total_discount / discounted if discounted > 0 else 0.0,
        "avg_discount_per_customer": total_discount / customers_discounted if customers_discounted > 0 else 0.0,
        "penetration": discounted / transactions * 100 if transactions > 0 else 0.0,
        "customer_penetration": customers_discounted / customers * 100 if customers > 0 else 0.0,
        "transactions": transactions,
    }


def _total(key: str):
    return lambda df: compute_discount_totals(df)[key]


DISCOUNT_CARD_SPECS = [
    CardSpec("Total Discounts", _total("total_discount"), "currency", "Total discount value given", invert=True),
    CardSpec("Discount Rate", _total("discount_rate"), "percent", "Discounts as a share of revenue plus discounts", invert=True),
    CardSpec("Discounted Transactions", _total("discounted_transactions"), "count", "Transactions with a discount"),
    CardSpec("Customers with Discounts", _total("customers_with_discounts"), "count", "Unique customers who received a discount"),
    CardSpec("Avg Discount / Transaction", _total("avg_discount_per_transaction"), "currency", "Average discount per discounted transaction"),
    CardSpec("Avg Discount / Customer", _total("avg_discount_per_customer"), "currency", "Average discount per discounted customer"),
    CardSpec("Discount Penetration", _total("penetration"), "percent", "Share of transactions carrying a discount"),
    CardSpec("Customer Discount Rate", _total("customer_penetration"), "percent", "Share of customers who received a discount"),
]


def discount_metric_cards(sales: pd.DataFrame, anchor=None, mode: str = COMPARE_PREVIOUS_MONTH,
                          date_range: Optional[Tuple] = None) -> List[MetricCard]:
    if sales is None or sales.empty:
        return []
    return windowed_cards(sales, DISCOUNT_CARD_SPECS, DATE_COL, anchor, mode, date_range)


def compute_discount_breakdown(sales: pd.DataFrame, dimension: str = "cleaned_category") -> pd.DataFrame:
    """
    Discount totals per value of `dimension`.

    Adds share_pct: the group's share of all discount value.
    """
    if sales is None or sales.empty or dimension not in sales.columns:
        return pd.DataFrame()

    keyed = sales.copy()
    keyed[dimension] = keyed[dimension].fillna("").astype(str).str.strip().replace("", "Unknown")

    rows = []
    for value, group in keyed.groupby(dimension):
        totals = compute_discount_totals(group)
        totals[dimension] = value
        rows.append(totals)

    result = pd.DataFrame(rows)
    result = result[result["total_discount"] > 0]
    if result.empty:
        return pd.DataFrame()

    grand_total = result["total_discount"].sum()
    result["share_pct"] = np.where(grand_total != 0, result["total_discount"] / grand_total * 100, 0)

    cols = [dimension] + [c for c in result.columns if c != dimension]
    return result[cols].sort_values("total_discount", ascending=False).reset_index(drop=True)


def discount_distribution(sales: pd.DataFrame, bins: Optional[List[float]] = None) -> pd.DataFrame:
    """Count of discounted rows per discount-percentage band."""
    rows = discount_rows(sales)
    if rows.empty:
        return pd.DataFrame(columns=["band", "transactions", "total_discount"])

    bins = bins or [0, 10, 20, 30, 50, 100]
    labels = [f"{int(lo)}-{int(hi)}%" for lo, hi in zip(bins[:-1], bins[1:])]
    bands = pd.cut(rows["discount_percentage"].clip(upper=bins[-1]), bins=bins, labels=labels, include_lowest=True)

    result = rows.groupby(bands, observed=False).agg(
        transactions=("discount_amount", "size"),
        total_discount=("discount_amount", "sum"),
    ).reset_index().rename(columns={"discount_percentage": "band"})
    return result
