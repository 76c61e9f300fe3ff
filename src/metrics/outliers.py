"""
Month deep dive: where a month's revenue came from.

Used for months that stand out (see `detect_outlier_months`). Only succeeded
payments count. A customer (member ID, else email) is "new" in the month when
their first succeeded purchase ever falls inside it; all of their purchases
that month then count as new-client revenue.

A purchase is "stacked" when the member's existing membership
(Sec. Membership End Date) had not ended by the purchase date.
"""
import logging
from typing import Dict, Optional

import numpy as np
import pandas as pd

from src.metrics.periods import DateLike, Window, add_month_key, filter_window, month_end, month_start
from src.metrics.sales import member_keys

logger = logging.getLogger(__name__)

DATE_COL = "payment_date"
MEMBERSHIP_CATEGORIES = ("subscription", "pack")
STACKING_EXCLUDED_PRODUCTS = ("studio single class", "private class", "money-credits")
STACKING_EXCLUDED_CATEGORIES = ("product", "event", "money-credits")

CUSTOMER_NEW = "New"
CUSTOMER_REPEAT = "Repeat"


def succeeded_sales(sales: pd.DataFrame) -> pd.DataFrame:
    """Succeeded payments with a customer key column."""
    if sales is None or sales.empty:
        return pd.DataFrame(columns=list(sales.columns if sales is not None else []) + ["customer"])
    status = sales["payment_status"].fillna("").astype(str).str.strip().str.lower()
    ok = sales[status == "succeeded"].copy()
    ok["customer"] = member_keys(ok)
    return ok[ok["customer"] != ""].copy()


def _product(df: pd.DataFrame) -> pd.Series:
    product = df["cleaned_product"].fillna("").astype(str).str.strip()
    item = df["payment_item"].fillna("").astype(str).str.strip()
    return product.where(product != "", item)


def prepare_month(sales: pd.DataFrame, month: DateLike, location: Optional[str] = None) -> pd.DataFrame:
    """
    The month's succeeded sales, flagged.

    Adds `customer`, `product`, `is_new`, `is_stacked` and `has_discount`.
    """
    ok = succeeded_sales(sales)
    window = Window(month_start(month), month_end(month))
    month_sales = filter_window(ok, DATE_COL, window).copy()
    if location:
        month_sales = month_sales[month_sales["calculated_location"].astype(str).str.strip() == location].copy()
    if month_sales.empty:
        return month_sales.assign(product="", is_new=False, is_stacked=False, has_discount=False)

    first_purchase = pd.to_datetime(ok[DATE_COL], errors="coerce").groupby(ok["customer"]).min()
    first = month_sales["customer"].map(first_purchase)
    month_sales["is_new"] = first.isna() | ((first >= window.start) & (first <= window.end))

    paid_on = pd.to_datetime(month_sales[DATE_COL], errors="coerce").dt.normalize()
    ends = pd.to_datetime(month_sales["sec_membership_end_date"], errors="coerce").dt.normalize()
    month_sales["is_stacked"] = ends.notna() & (ends >= paid_on)
    month_sales["has_discount"] = (month_sales["discount_amount"] > 0) | (month_sales["discount_percentage"] > 0)
    month_sales["product"] = _product(month_sales)
    return month_sales


def customer_split(month_sales: pd.DataFrame) -> pd.DataFrame:
    """
    New vs repeat customers: revenue, units, transactions, members, ATV, and
    the discounted / full-price split.
    """
    rows = []
    for label, flag in ((CUSTOMER_NEW, True), (CUSTOMER_REPEAT, False)):
        group = month_sales[month_sales["is_new"] == flag] if not month_sales.empty else month_sales
        discounted = group[group["has_discount"]] if not group.empty else group
        full_price = group[~group["has_discount"]] if not group.empty else group
        with_pct = discounted[discounted["discount_percentage"] > 0] if not discounted.empty else discounted
        revenue = float(group["payment_value"].sum()) if not group.empty else 0.0
        transactions = len(group)
        rows.append({
            "customer_type": label,
            "revenue": revenue,
            "units": transactions,
            "transactions": transactions,
            "unique_members": int(group["customer"].nunique()) if not group.empty else 0,
            "atv": revenue / transactions if transactions else 0.0,
            "discounted_revenue": float(discounted["payment_value"].sum()) if not discounted.empty else 0.0,
            "full_price_revenue": float(full_price["payment_value"].sum()) if not full_price.empty else 0.0,
            "discounted_transactions": len(discounted),
            "full_price_transactions": len(full_price),
            "discount_amount": float(discounted["discount_amount"].sum()) if not discounted.empty else 0.0,
            "avg_discount_pct": float(with_pct["discount_percentage"].mean()) if not with_pct.empty else 0.0,
        })
    return pd.DataFrame(rows)


def membership_moves(month_sales: pd.DataFrame) -> Dict[str, int]:
    """
    Consecutive membership purchases by the same customer in the month:
    same product is a renewal, otherwise a higher price is an upgrade and a
    lower one a downgrade.
    """
    moves = {"renewals": 0, "upgrades": 0, "downgrades": 0}
    if month_sales.empty:
        return moves

    category = month_sales["payment_category"].fillna("").astype(str).str.strip().str.lower()
    memberships = month_sales[category.isin(MEMBERSHIP_CATEGORIES)]
    for _, purchases in memberships.sort_values(DATE_COL, kind="stable").groupby("customer"):
        previous = None
        for product, price in zip(purchases["product"], purchases["payment_value"]):
            if previous is not None:
                prev_product, prev_price = previous
                if product == prev_product:
                    moves["renewals"] += 1
                elif price > prev_price:
                    moves["upgrades"] += 1
                elif price < prev_price:
                    moves["downgrades"] += 1
            previous = (product, price)
    return moves


def stacked_members(month_sales: pd.DataFrame) -> pd.DataFrame:
    """
    Customers who bought more than one membership in the month, counting
    only purchases outside single classes, private classes, money credits,
    products and events.
    """
    cols = ["customer", "customer_name", "customer_email", "total_memberships", "total_paid", "memberships"]
    if month_sales.empty:
        return pd.DataFrame(columns=cols)

    category = month_sales["payment_category"].fillna("").astype(str).str.strip().str.lower()
    membership_counts = month_sales[category.isin(MEMBERSHIP_CATEGORIES)].groupby("customer").size()
    candidates = membership_counts[membership_counts > 1].index

    product = month_sales["product"].str.lower()
    cleaned_category = month_sales["cleaned_category"].fillna("").astype(str).str.strip().str.lower()
    excluded = product.apply(lambda name: any(word in name for word in STACKING_EXCLUDED_PRODUCTS))
    excluded |= cleaned_category.isin(STACKING_EXCLUDED_CATEGORIES)
    valid = month_sales[month_sales["customer"].isin(candidates) & ~excluded]

    rows = []
    for customer, purchases in valid.groupby("customer"):
        if len(purchases) < 2:
            continue
        rows.append({
            "customer": customer,
            "customer_name": purchases["customer_name"].iloc[0] or "Unknown",
            "customer_email": purchases["customer_email"].iloc[0],
            "total_memberships": len(purchases),
            "total_paid": float(purchases["payment_value"].sum()),
            "memberships": ", ".join(p or "Unknown" for p in purchases["product"]),
        })
    result = pd.DataFrame(rows, columns=cols)
    return result.sort_values("total_paid", ascending=False).reset_index(drop=True)


def daily_breakdown(month_sales: pd.DataFrame) -> pd.DataFrame:
    """Per-day revenue split and client counts, oldest day first."""
    cols = [
        "date", "revenue", "new_client_revenue", "existing_client_revenue", "stacked_revenue",
        "transactions", "new_clients", "existing_clients", "multi_purchase_clients",
    ]
    if month_sales.empty:
        return pd.DataFrame(columns=cols)

    work = month_sales.copy()
    work["date"] = pd.to_datetime(work[DATE_COL], errors="coerce").dt.normalize()
    purchases = work["customer"].map(work["customer"].value_counts())
    work["new_value"] = np.where(work["is_new"], work["payment_value"], 0.0)
    work["existing_value"] = np.where(work["is_new"], 0.0, work["payment_value"])
    work["stacked_value"] = np.where(work["is_stacked"], work["payment_value"], 0.0)
    work["new_customer"] = work["customer"].where(work["is_new"])
    work["existing_customer"] = work["customer"].where(~work["is_new"])
    work["multi_customer"] = work["customer"].where(purchases > 1)

    daily = work.groupby("date", as_index=False).agg(
        revenue=("payment_value", "sum"),
        new_client_revenue=("new_value", "sum"),
        existing_client_revenue=("existing_value", "sum"),
        stacked_revenue=("stacked_value", "sum"),
        transactions=("payment_value", "size"),
        new_clients=("new_customer", "nunique"),
        existing_clients=("existing_customer", "nunique"),
        multi_purchase_clients=("multi_customer", "nunique"),
    )
    return daily.sort_values("date").reset_index(drop=True)[cols]


def membership_breakdown(month_sales: pd.DataFrame) -> pd.DataFrame:
    """Revenue, count, average price and new / existing clients per product."""
    cols = ["product", "category", "revenue", "count", "avg_price", "new_clients", "existing_clients"]
    if month_sales.empty:
        return pd.DataFrame(columns=cols)

    work = month_sales.copy()
    work["product"] = work["product"].replace("", "Unknown")
    work["category"] = work["cleaned_category"].fillna("").astype(str).str.strip().replace("", "Other")
    work["new_customer"] = work["customer"].where(work["is_new"])
    work["existing_customer"] = work["customer"].where(~work["is_new"])

    result = work.groupby("product", as_index=False).agg(
        category=("category", "first"),
        revenue=("payment_value", "sum"),
        count=("payment_value", "size"),
        new_clients=("new_customer", "nunique"),
        existing_clients=("existing_customer", "nunique"),
    )
    result["avg_price"] = result["revenue"] / result["count"]
    return result.sort_values("revenue", ascending=False).reset_index(drop=True)[cols]


def _membership_status(frozen: bool, end_date, today: pd.Timestamp) -> str:
    if pd.isna(end_date):
        return "None"
    if frozen:
        return "Frozen"
    return "Active" if end_date >= today else "Expired"


def compute_spenders(month_sales: pd.DataFrame, today: Optional[DateLike] = None) -> pd.DataFrame:
    """
    Spend per customer in the month, biggest first, with the status of the
    membership that ends last among their purchases.
    """
    cols = [
        "customer", "customer_name", "customer_email", "total_spent", "transactions", "avg_transaction",
        "first_purchase", "last_purchase", "is_new", "last_membership", "last_membership_end",
        "membership_status", "discount_received",
    ]
    if month_sales.empty:
        return pd.DataFrame(columns=cols)

    today = pd.Timestamp(today if today is not None else pd.Timestamp.now()).normalize()
    work = month_sales.copy()
    work["paid_on"] = pd.to_datetime(work[DATE_COL], errors="coerce")
    work["ends"] = pd.to_datetime(work["sec_membership_end_date"], errors="coerce")
    frozen = work["sec_membership_is_frozen"] if "sec_membership_is_frozen" in work.columns else False
    work["frozen"] = frozen

    rows = []
    for customer, group in work.groupby("customer", sort=False):
        group = group.sort_values("paid_on", kind="stable")
        total = float(group["payment_value"].sum())
        with_end = group.dropna(subset=["ends"])
        latest = with_end.sort_values("ends", kind="stable").iloc[-1] if not with_end.empty else None
        end_date = latest["ends"] if latest is not None else pd.NaT
        rows.append({
            "customer": customer,
            "customer_name": group["customer_name"].iloc[0],
            "customer_email": group["customer_email"].iloc[0],
            "total_spent": total,
            "transactions": len(group),
            "avg_transaction": total / len(group),
            "first_purchase": group["paid_on"].min(),
            "last_purchase": group["paid_on"].max(),
            "is_new": bool(group["is_new"].iloc[0]),
            "last_membership": latest["product"] if latest is not None else "",
            "last_membership_end": end_date,
            "membership_status": _membership_status(
                bool(latest["frozen"]) if latest is not None else False, end_date, today
            ),
            "discount_received": float(group["discount_amount"].sum()),
        })
    result = pd.DataFrame(rows, columns=cols)
    return result.sort_values("total_spent", ascending=False, kind="stable").reset_index(drop=True)


def top_spenders(spenders: pd.DataFrame, n: int = 20, is_new: Optional[bool] = None) -> pd.DataFrame:
    """Biggest `n` spenders, optionally only new (True) or repeat (False) customers."""
    if is_new is not None and not spenders.empty:
        spenders = spenders[spenders["is_new"] == is_new]
    return spenders.head(n).reset_index(drop=True)


def bottom_spenders(spenders: pd.DataFrame, n: int = 20, is_new: Optional[bool] = None) -> pd.DataFrame:
    """Smallest `n` non-zero spenders, smallest first."""
    if is_new is not None and not spenders.empty:
        spenders = spenders[spenders["is_new"] == is_new]
    paying = spenders[spenders["total_spent"] > 0] if not spenders.empty else spenders
    return paying.tail(n).iloc[::-1].reset_index(drop=True)


def lapsed_members(sales: pd.DataFrame, today: Optional[DateLike] = None, limit: int = 50) -> pd.DataFrame:
    """
    Customers whose latest membership ended before today and is not frozen,
    by lifetime value. Uses every succeeded sale, not just one month.
    """
    cols = [
        "customer", "customer_name", "customer_email", "last_membership_end", "days_since_lapsed",
        "last_membership", "lifetime_value", "last_membership_amount",
    ]
    ok = succeeded_sales(sales)
    if ok.empty:
        return pd.DataFrame(columns=cols)

    today = pd.Timestamp(today if today is not None else pd.Timestamp.now()).normalize()
    ok["ends"] = pd.to_datetime(ok["sec_membership_end_date"], errors="coerce").dt.normalize()
    ok["product"] = _product(ok)
    lifetime = ok.groupby("customer")["payment_value"].sum()

    with_end = ok.dropna(subset=["ends"])
    if with_end.empty:
        return pd.DataFrame(columns=cols)
    latest = with_end.sort_values(["customer", "ends"], kind="stable").drop_duplicates("customer", keep="last")
    if "sec_membership_is_frozen" in latest.columns:
        frozen = latest["sec_membership_is_frozen"].astype(bool)
    else:
        frozen = pd.Series(False, index=latest.index)
    lapsed = latest[(latest["ends"] < today) & ~frozen]

    first_rows = ok.drop_duplicates("customer").set_index("customer")
    result = pd.DataFrame({
        "customer": lapsed["customer"].values,
        "customer_name": lapsed["customer"].map(first_rows["customer_name"]).values,
        "customer_email": lapsed["customer"].map(first_rows["customer_email"]).values,
        "last_membership_end": lapsed["ends"].values,
        "days_since_lapsed": (today - lapsed["ends"]).dt.days.values,
        "last_membership": lapsed["product"].values,
        "lifetime_value": lapsed["customer"].map(lifetime).values,
        "last_membership_amount": lapsed["payment_value"].values,
    }, columns=cols)
    return result.sort_values("lifetime_value", ascending=False).head(limit).reset_index(drop=True)


def visit_patterns(checkins: pd.DataFrame, month: DateLike, revenue: float,
                   location: Optional[str] = None) -> Dict[str, float]:
    """Attended check-ins in the month, per visitor, and per 1,000 of revenue."""
    if checkins is None or checkins.empty:
        visits = visitors = 0
    else:
        window = Window(month_start(month), month_end(month))
        attended = filter_window(checkins, "date_ist", window)
        attended = attended[attended["checked_in"].astype(bool)]
        if location:
            attended = attended[attended["location"].astype(str).str.strip() == location]
        visits = len(attended)
        visitors = int(member_keys(attended.rename(columns={"email": "customer_email"})).replace("", np.nan).nunique())
    return {
        "total_visits": visits,
        "avg_visits_per_client": visits / visitors if visitors else 0.0,
        "visits_per_1000_revenue": visits / (revenue / 1000) if revenue > 0 else 0.0,
    }


def detect_outlier_months(sales: pd.DataFrame, threshold: float = 1.5) -> pd.DataFrame:
    """
    Monthly succeeded revenue with a z-score against the average month; months
    beyond `threshold` standard deviations are flagged.
    """
    cols = ["month_key", "revenue", "z_score", "is_outlier"]
    ok = succeeded_sales(sales)
    if ok.empty:
        return pd.DataFrame(columns=cols)

    monthly = add_month_key(ok, DATE_COL).dropna(subset=["month_key"])
    monthly = monthly.groupby("month_key", as_index=False).agg(revenue=("payment_value", "sum"))
    std = float(monthly["revenue"].std(ddof=0))
    mean = float(monthly["revenue"].mean())
    monthly["z_score"] = (monthly["revenue"] - mean) / std if std > 0 else 0.0
    monthly["is_outlier"] = monthly["z_score"].abs() > threshold
    return monthly[cols].sort_values("month_key").reset_index(drop=True)


def analyse_month(
    sales: pd.DataFrame,
    month: DateLike,
    checkins: Optional[pd.DataFrame] = None,
    location: Optional[str] = None,
    today: Optional[DateLike] = None,
) -> Dict:
    """Every deep-dive view for one month."""
    month_sales = prepare_month(sales, month, location)
    revenue = float(month_sales["payment_value"].sum()) if not month_sales.empty else 0.0
    split = customer_split(month_sales)
    stacked = stacked_members(month_sales)
    spenders = compute_spenders(month_sales, today)
    discounted = month_sales[month_sales["discount_amount"] > 0] if not month_sales.empty else month_sales

    def _sum(mask_col: str) -> float:
        if month_sales.empty:
            return 0.0
        return float(month_sales.loc[month_sales[mask_col], "payment_value"].sum())

    def _clients(flag: bool) -> int:
        if month_sales.empty:
            return 0
        return int(month_sales.loc[month_sales["is_new"] == flag, "customer"].nunique())

    logger.debug("Month deep dive %s: %d sales", month_start(month).strftime("%b %Y"), len(month_sales))
    return {
        "month": month_start(month),
        "total_revenue": revenue,
        "new_client_revenue": _sum("is_new"),
        "existing_client_revenue": revenue - _sum("is_new"),
        "stacked_revenue": _sum("is_stacked"),
        "customer_split": split,
        "new_clients": _clients(True),
        "existing_clients": _clients(False),
        "clients_with_active_membership": (
            int(month_sales.loc[month_sales["is_stacked"], "customer"].nunique()) if not month_sales.empty else 0
        ),
        **membership_moves(month_sales),
        "stacked_members": stacked,
        "daily": daily_breakdown(month_sales),
        "memberships": membership_breakdown(month_sales),
        "spenders": spenders,
        "lapsed_members": lapsed_members(sales, today),
        "discount_given": float(discounted["discount_amount"].sum()) if not discounted.empty else 0.0,
        "discounted_transactions": len(discounted),
        "avg_discount_pct": float(discounted["discount_percentage"].mean()) if not discounted.empty else 0.0,
        **visit_patterns(checkins, month, revenue, location),
    }
