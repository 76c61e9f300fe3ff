"""
Consistent number and display formatting.

Currency is Indian rupees with Indian digit grouping (12,34,567).
"""
import pandas as pd
from typing import Union, Optional, Any

try:
    from pandas.io.formats.style import Styler
except ImportError:
    Styler = Any  # type: ignore[misc]


Number = Union[float, int, None]


def _missing(value: Any) -> bool:
    return value is None or pd.isna(value)


# =============================================================================
# NUMBER FORMATTERS
# =============================================================================

def group_indian(value: Number, decimals: int = 0) -> str:
    """Indian digit grouping: 1234567 -> 12,34,567."""
    if _missing(value):
        return "—"
    negative = value < 0
    text = f"{abs(value):.{decimals}f}"
    whole, _, fraction = text.partition(".")

    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])

    result = f"{whole}.{fraction}" if fraction else whole
    return f"-{result}" if negative else result


def fmt_currency(value: Number, decimals: int = 0) -> str:
    """Format as rupees: ₹12,34,567 or ₹1,234.50"""
    if _missing(value):
        return "—"
    text = group_indian(value, decimals)
    if text.startswith("-"):
        return f"-₹{text[1:]}"
    return f"₹{text}"


def fmt_percent(value: Number, decimals: int = 1) -> str:
    """Format percentage: 12.3%"""
    if _missing(value):
        return "—"
    return f"{value:,.{decimals}f}%"


def fmt_count(value: Number) -> str:
    """Format count with Indian grouping: 1,23,456"""
    if _missing(value):
        return "—"
    return group_indian(round(value))


def fmt_decimal(value: Number, decimals: int = 1) -> str:
    if _missing(value):
        return "—"
    return f"{value:,.{decimals}f}"


FORMATTERS = {
    "currency": fmt_currency,
    "percent": fmt_percent,
    "count": fmt_count,
    "decimal": fmt_decimal,
}


def format_value(value: Number, kind: str) -> str:
    """Format `value` with the named formatter (currency, percent, count, decimal)."""
    formatter = FORMATTERS.get(kind, fmt_decimal)
    return formatter(value)


# =============================================================================
# DELTA INDICATORS
# =============================================================================

def delta_color(value: Optional[float], invert: bool = False) -> str:
    """
    Streamlit delta_color for a change.

    Args:
        value: The change
        invert: If True, an increase is bad (e.g. churn, cancellations)
    """
    if _missing(value) or value == 0:
        return "off"
    return "inverse" if invert else "normal"


def trend_badge(trend: str) -> str:
    """Return colored trend badge HTML for strong/moderate/weak."""
    colors = {
        "strong": "#28a745",
        "moderate": "#ffc107",
        "weak": "#6c757d",
    }
    color = colors.get(str(trend).lower(), colors["weak"])
    return f'<span style="color: {color}; font-size: 0.85em;">● {trend}</span>'


# =============================================================================
# DATAFRAME FORMATTERS
# =============================================================================

CURRENCY_COLUMNS = [
    "net_revenue", "gross_revenue", "revenue", "payment_value", "payment_vat",
    "discount_amount", "total_discount", "avg_discount_per_transaction",
    "avg_discount_per_customer", "atv", "asv", "ltv",
    "avg_ltv", "total_paid", "paid", "revenue_impact", "revenue_per_checkin",
    "rev_per_checkin", "rev_per_booking", "mrp_post_tax", "mrp_pre_tax",
    "total_revenue", "total_discounts", "total_payroll", "total_spent", "avg_transaction",
    "discount_received", "lifetime_value", "last_membership_amount", "new_client_revenue",
    "existing_client_revenue", "stacked_revenue", "full_price_revenue", "discounted_revenue",
    "avg_price", "forecast_revenue", "avg_transaction_value", "total_unpaid",
]

PERCENT_COLUMNS = [
    "discount_percentage", "discount_rate", "fill_rate", "fill_percentage",
    "conversion_rate", "retention_rate", "cancellation_rate", "late_cancel_rate",
    "churn_rate", "share_pct", "growth_pct", "penetration", "customer_penetration",
    "active_rate", "frozen_rate", "utilisation_rate", "session_share_pct", "revenue_share_pct",
    "show_up_rate", "payment_compliance", "avg_discount_pct", "change_rate", "decline_rate",
    "fill_rate_std",
]

COUNT_COLUMNS = [
    "transactions", "units", "members", "sessions", "checkins", "customers",
    "new_clients", "converted", "retained", "leads", "late_cancellations",
    "total", "active", "churned", "frozen", "capacity", "checked_in_count",
    "total_sales_count", "total_sessions", "total_attendance", "total_leads",
    "converted_leads", "total_expirations", "discounted_transactions",
    "customers_with_discounts", "empty_sessions", "non_empty_sessions", "booked",
    "bookings", "trials", "lost", "repeat_offenders", "new_members", "trainers",
    "total_memberships", "existing_clients", "multi_purchase_clients", "days_since_lapsed",
    "total_bookings", "total_visits", "total_cancellations",
]

DECIMAL_COLUMNS = [
    "class_avg", "class_average", "class_average_incl_empty",
    "class_average_excl_empty", "avg_visits", "composite_score", "per_member",
    "avg_conversion_span", "slot_class_average", "vs_slot_average", "recent_avg", "previous_avg",
    "churn_score",
]


def format_metric_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Format a metrics dataframe for display.

    Applies the formatter matching each known column name.
    """
    df = df.copy()

    for col in df.columns:
        if col in CURRENCY_COLUMNS:
            df[col] = df[col].apply(fmt_currency)
        elif col in PERCENT_COLUMNS:
            df[col] = df[col].apply(fmt_percent)
        elif col in COUNT_COLUMNS:
            df[col] = df[col].apply(fmt_count)
        elif col in DECIMAL_COLUMNS:
            df[col] = df[col].apply(fmt_decimal)

    return df


def style_growth(df: pd.DataFrame, growth_cols) -> "Styler":
    """Colour growth columns green/red by sign."""
    def color_growth(val):
        if _missing(val):
            return ""
        if val < 0:
            return "color: #dc3545"
        if val > 0:
            return "color: #28a745"
        return ""

    cols = [c for c in growth_cols if c in df.columns]
    return df.style.map(color_growth, subset=cols)
