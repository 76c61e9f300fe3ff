"""
Member behaviour analytics.

Works on a per-member, per-month activity frame built from check-ins:

- booked: check-in rows (every booking, attended or not)
- visits: rows with checked_in
- cancellations: rows with is_late_cancelled
- paid_amount: sum of `paid`; unpaid_amount is 0 unless the frame already
  carries it

On top of that frame: per-member rates, segments, monthly trends, churn and
payment risk, 3-month trend changes, booking correlations and a plain-text
summary.
"""
import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from src.metrics.periods import add_month_key, shift_months

logger = logging.getLogger(__name__)

MONTHLY_COLUMNS = [
    "member_id", "full_name", "email", "month_key",
    "booked", "visits", "cancellations", "paid_amount", "unpaid_amount",
]

SEGMENT_HIGH_VALUE = "high-value"
SEGMENT_ENGAGED = "engaged"
SEGMENT_UNRELIABLE = "unreliable"
SEGMENT_RELIABLE = "reliable"
SEGMENT_AT_RISK = "at-risk"
SEGMENT_INACTIVE = "inactive"

HIGH_VALUE_REVENUE = 20000
CHURN_SCORE_THRESHOLD = 40
DECLINE_THRESHOLD = -15.0
CANCELLATION_RISE_THRESHOLD = 20.0
INCREASE_THRESHOLD = 15.0

# (multiplier, confidence %) for each forecast month after the latest one
FORECAST_STEPS = [(1.05, 75), (1.08, 65), (1.10, 55)]


def _rate(numerator, denominator):
    """Vectorised numerator / denominator * 100, 0 where the denominator is 0."""
    numerator = np.asarray(numerator, dtype=float)
    denominator = np.asarray(denominator, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(denominator > 0, numerator / denominator * 100, 0.0)


def member_monthly_activity(checkins: pd.DataFrame) -> pd.DataFrame:
    """One row per member and month from a check-ins frame."""
    if checkins is None or checkins.empty:
        return pd.DataFrame(columns=MONTHLY_COLUMNS)

    work = add_month_key(checkins, "date_ist").dropna(subset=["month_key"])
    member = work["member_id"].fillna("").astype(str).str.strip()
    email = work["email"].fillna("").astype(str).str.strip()
    work["member_key"] = member.where(member != "", email)
    work = work[work["member_key"] != ""].copy()
    if work.empty:
        return pd.DataFrame(columns=MONTHLY_COLUMNS)

    work["email"] = email
    work["full_name"] = (
        work["first_name"].fillna("").astype(str) + " " + work["last_name"].fillna("").astype(str)
    ).str.strip()
    work["visit"] = work["checked_in"].astype(bool).astype(float)
    work["cancel"] = work["is_late_cancelled"].astype(bool).astype(float)

    monthly = work.groupby(["member_key", "month_key"], as_index=False).agg(
        full_name=("full_name", "first"),
        email=("email", "first"),
        booked=("member_key", "size"),
        visits=("visit", "sum"),
        cancellations=("cancel", "sum"),
        paid_amount=("paid", "sum"),
    )
    monthly["booked"] = monthly["booked"].astype(float)
    monthly["unpaid_amount"] = 0.0
    return monthly.rename(columns={"member_key": "member_id"})[MONTHLY_COLUMNS]


def compute_member_performance(monthly: pd.DataFrame) -> pd.DataFrame:
    """
    Totals and rates per member.

    - cancellation_rate / show_up_rate: over bookings
    - payment_compliance: paid / (paid + unpaid); 100 when nothing was owed
    - avg_transaction_value: paid per visit
    """
    cols = [
        "member_id", "full_name", "email", "total_bookings", "total_visits", "total_cancellations",
        "total_paid", "total_unpaid", "cancellation_rate", "show_up_rate",
        "payment_compliance", "avg_transaction_value",
    ]
    if monthly is None or monthly.empty:
        return pd.DataFrame(columns=cols)

    perf = monthly.groupby("member_id", as_index=False).agg(
        full_name=("full_name", "first"),
        email=("email", "first"),
        total_bookings=("booked", "sum"),
        total_visits=("visits", "sum"),
        total_cancellations=("cancellations", "sum"),
        total_paid=("paid_amount", "sum"),
        total_unpaid=("unpaid_amount", "sum"),
    )
    owed = perf["total_paid"] + perf["total_unpaid"]
    perf["cancellation_rate"] = _rate(perf["total_cancellations"], perf["total_bookings"])
    perf["show_up_rate"] = _rate(perf["total_visits"], perf["total_bookings"])
    perf["payment_compliance"] = np.where(owed > 0, _rate(perf["total_paid"], owed), 100.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        perf["avg_transaction_value"] = np.where(
            perf["total_visits"] > 0, perf["total_paid"] / perf["total_visits"], 0.0
        )
    return perf[cols]


def compute_monthly_behavior(monthly: pd.DataFrame) -> pd.DataFrame:
    """Totals per month across members, newest first."""
    cols = [
        "month_key", "bookings", "visits", "cancellations", "revenue", "unpaid",
        "cancellation_rate", "show_up_rate",
    ]
    if monthly is None or monthly.empty:
        return pd.DataFrame(columns=cols)

    trend = monthly.groupby("month_key", as_index=False).agg(
        bookings=("booked", "sum"),
        visits=("visits", "sum"),
        cancellations=("cancellations", "sum"),
        revenue=("paid_amount", "sum"),
        unpaid=("unpaid_amount", "sum"),
    )
    trend["cancellation_rate"] = _rate(trend["cancellations"], trend["bookings"])
    trend["show_up_rate"] = _rate(trend["visits"], trend["bookings"])
    return trend.sort_values("month_key", ascending=False).reset_index(drop=True)[cols]


def _last_activity(monthly: pd.DataFrame) -> pd.Series:
    active = monthly[(monthly["visits"] > 0) | (monthly["booked"] > 0)]
    return active.groupby("member_id")["month_key"].max()


def classify_member(row) -> str:
    """Segment rules, first match wins."""
    if row["total_paid"] > HIGH_VALUE_REVENUE:
        return SEGMENT_HIGH_VALUE
    if row["total_visits"] >= 20 and row["show_up_rate"] >= 80:
        return SEGMENT_ENGAGED
    if row["cancellation_rate"] > 30 or row["payment_compliance"] < 70:
        return SEGMENT_UNRELIABLE
    if row["total_visits"] >= 10 and row["show_up_rate"] >= 70:
        return SEGMENT_RELIABLE
    if row["total_visits"] < 5 or pd.isna(row["last_activity_month"]):
        return SEGMENT_INACTIVE
    if row["show_up_rate"] < 60 or row["total_visits"] < 10:
        return SEGMENT_AT_RISK
    return SEGMENT_INACTIVE


def segment_members(performance: pd.DataFrame, monthly: pd.DataFrame) -> pd.DataFrame:
    if performance is None or performance.empty:
        return pd.DataFrame(columns=["member_id", "full_name", "email", "segment", "last_activity_month"])

    segments = performance.copy()
    segments["last_activity_month"] = segments["member_id"].map(_last_activity(monthly))
    segments["segment"] = segments.apply(classify_member, axis=1)
    return segments


def segment_summary(segments: pd.DataFrame) -> pd.DataFrame:
    """Member count, revenue and average visits per segment."""
    if segments is None or segments.empty:
        return pd.DataFrame(columns=["segment", "members", "revenue", "avg_visits"])
    return (
        segments.groupby("segment", as_index=False)
        .agg(members=("member_id", "count"), revenue=("total_paid", "sum"), avg_visits=("total_visits", "mean"))
        .sort_values("members", ascending=False)
        .reset_index(drop=True)
    )


def financial_summary(performance: pd.DataFrame) -> Dict[str, float]:
    revenue = float(performance["total_paid"].sum()) if not performance.empty else 0.0
    outstanding = float(performance["total_unpaid"].sum()) if not performance.empty else 0.0
    visits = float(performance["total_visits"].sum()) if not performance.empty else 0.0
    owed = revenue + outstanding
    return {
        "total_revenue": revenue,
        "total_outstanding": outstanding,
        "collection_efficiency": revenue / owed * 100 if owed > 0 else 0.0,
        "revenue_per_visit": revenue / visits if visits > 0 else 0.0,
    }


def operational_summary(performance: pd.DataFrame) -> Dict[str, float]:
    if performance is None or performance.empty:
        bookings = visits = cancellations = revenue = 0.0
    else:
        bookings = float(performance["total_bookings"].sum())
        visits = float(performance["total_visits"].sum())
        cancellations = float(performance["total_cancellations"].sum())
        revenue = float(performance["total_paid"].sum())
    return {
        "total_bookings": bookings,
        "total_visits": visits,
        "total_cancellations": cancellations,
        "cancellation_rate": cancellations / bookings * 100 if bookings > 0 else 0.0,
        "utilisation_rate": visits / bookings * 100 if bookings > 0 else 0.0,
        "revenue_per_booking": revenue / bookings if bookings > 0 else 0.0,
    }


def _member_months(monthly: pd.DataFrame):
    """(member_id, name, email, months newest first) per member."""
    for member_id, group in monthly.groupby("member_id"):
        yield member_id, group.iloc[0]["full_name"], group.iloc[0]["email"], group.sort_values("month_key", ascending=False)


def churn_risk_members(monthly: pd.DataFrame, top_n: int = 20) -> pd.DataFrame:
    """
    Members whose visits fell between their previous three and latest three
    active months. churn_score = decline % * 2, clipped to 0..100; only scores
    above 40 are kept, highest first.
    """
    cols = ["member_id", "full_name", "email", "churn_score", "decline_rate", "last_active_month"]
    if monthly is None or monthly.empty:
        return pd.DataFrame(columns=cols)

    rows = []
    for member_id, name, email, months in _member_months(monthly):
        recent = float(months["visits"].iloc[:3].sum())
        previous = float(months["visits"].iloc[3:6].sum())
        decline = (previous - recent) / previous * 100 if previous > 0 else 0.0
        visited = months[months["visits"] > 0]
        rows.append({
            "member_id": member_id,
            "full_name": name,
            "email": email,
            "churn_score": min(100.0, max(0.0, decline * 2)),
            "decline_rate": decline,
            "last_active_month": visited["month_key"].iloc[0] if not visited.empty else pd.NaT,
        })

    risk = pd.DataFrame(rows, columns=cols)
    risk = risk[risk["churn_score"] > CHURN_SCORE_THRESHOLD]
    return risk.sort_values("churn_score", ascending=False).head(top_n).reset_index(drop=True)


def payment_risk_members(performance: pd.DataFrame, top_n: int = 20) -> pd.DataFrame:
    cols = ["member_id", "full_name", "email", "total_unpaid", "payment_compliance"]
    if performance is None or performance.empty:
        return pd.DataFrame(columns=cols)
    owing = performance[performance["total_unpaid"] > 0]
    return owing.sort_values("total_unpaid", ascending=False).head(top_n)[cols].reset_index(drop=True)


def forecast_revenue(monthly_behavior: pd.DataFrame, lookback: int = 6) -> pd.DataFrame:
    """
    Revenue for the three months after the latest one: the average of the
    last `lookback` months scaled by a fixed growth step per month.
    """
    cols = ["month_key", "forecast_revenue", "confidence"]
    if monthly_behavior is None or monthly_behavior.empty:
        return pd.DataFrame(columns=cols)

    recent = monthly_behavior.sort_values("month_key", ascending=False).head(lookback)
    average = float(recent["revenue"].mean())
    latest = recent["month_key"].iloc[0]
    rows = [
        {"month_key": shift_months(latest, step), "forecast_revenue": average * multiplier, "confidence": confidence}
        for step, (multiplier, confidence) in enumerate(FORECAST_STEPS, start=1)
    ]
    return pd.DataFrame(rows, columns=cols)


def _change_rate(recent: float, previous: float) -> float:
    if previous > 0:
        return (recent - previous) / previous * 100
    return 100.0 if recent > 0 else 0.0


def detect_trend_changes(monthly: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Compare each member's average over their latest three months with the
    three before (members with at least six months only).

    Declining: bookings or visits down more than 15%, or cancellations up
    more than 20% (stored as a negative change) with at least one per month.
    Increasing: bookings or attendance up more than 15%.

    Returns the full (declining, increasing) frames, largest changes first.
    """
    cols = ["member_id", "full_name", "email", "metric", "change_rate", "recent_avg", "previous_avg"]
    declining, increasing = [], []
    if monthly is not None and not monthly.empty:
        for member_id, name, email, months in _member_months(monthly):
            if len(months) < 6:
                continue
            base = {"member_id": member_id, "full_name": name, "email": email}
            avg = {
                col: (float(months[col].iloc[:3].sum()) / 3, float(months[col].iloc[3:6].sum()) / 3)
                for col in ("booked", "visits", "cancellations")
            }

            for col, metric in (("booked", "bookings"), ("visits", "visits")):
                recent, previous = avg[col]
                if previous > 0 and recent < previous:
                    change = (recent - previous) / previous * 100
                    if change < DECLINE_THRESHOLD:
                        declining.append({**base, "metric": metric, "change_rate": change,
                                          "recent_avg": recent, "previous_avg": previous})

            recent, previous = avg["cancellations"]
            if recent > previous:
                change = _change_rate(recent, previous)
                if change > CANCELLATION_RISE_THRESHOLD and recent >= 1:
                    declining.append({**base, "metric": "cancellations", "change_rate": -change,
                                      "recent_avg": recent, "previous_avg": previous})

            for col, metric in (("booked", "bookings"), ("visits", "attendance")):
                recent, previous = avg[col]
                if recent > previous:
                    change = _change_rate(recent, previous)
                    if change > INCREASE_THRESHOLD:
                        increasing.append({**base, "metric": metric, "change_rate": change,
                                           "recent_avg": recent, "previous_avg": previous})

    declining_df = pd.DataFrame(declining, columns=cols).sort_values("change_rate").reset_index(drop=True)
    increasing_df = pd.DataFrame(increasing, columns=cols).sort_values("change_rate", ascending=False).reset_index(drop=True)
    return declining_df, increasing_df


def top_changes(changes: pd.DataFrame, top_n: int = 30) -> pd.DataFrame:
    return changes.head(top_n).reset_index(drop=True)


def pearson(x, y) -> float:
    """Pearson correlation; 0 when either side has no variance."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) == 0:
        return 0.0
    dx = x - x.mean()
    dy = y - y.mean()
    denominator = np.sqrt((dx * dx).sum() * (dy * dy).sum())
    return float((dx * dy).sum() / denominator) if denominator > 0 else 0.0


def correlation_insights(monthly: pd.DataFrame, performance: pd.DataFrame, declining: pd.DataFrame) -> Dict:
    """Booking correlations over member-months with bookings, and risk patterns."""
    booked = monthly[monthly["booked"] > 0] if monthly is not None and not monthly.empty else pd.DataFrame()
    if booked.empty:
        cancel_corr = visit_corr = 0.0
    else:
        cancel_corr = pearson(booked["booked"], booked["cancellations"])
        visit_corr = pearson(booked["booked"], booked["visits"])

    pattern = "Neutral booking behavior"
    if cancel_corr > 0.5:
        pattern = "Higher bookings correlate with more cancellations (potential over-booking)"
    elif cancel_corr < -0.3:
        pattern = "Higher bookings correlate with fewer cancellations (reliable bookers)"
    if visit_corr > 0.7:
        pattern += " | Strong booking-to-visit conversion"
    elif visit_corr < 0.5:
        pattern += " | Weak booking-to-visit conversion"

    members = len(performance) if performance is not None else 0
    patterns = []
    if members:
        high_cancel = int((performance["cancellation_rate"] > 30).sum())
        if high_cancel > members * 0.1:
            patterns.append({"pattern": f"{high_cancel} members with >30% cancellation rate",
                             "member_count": high_cancel, "severity": "high"})
        low_show = int((performance["show_up_rate"] < 60).sum())
        if low_show > members * 0.15:
            patterns.append({"pattern": f"{low_show} members with <60% show-up rate",
                             "member_count": low_show, "severity": "medium"})
    declining_bookings = int((declining["metric"] == "bookings").sum()) if not declining.empty else 0
    if declining_bookings > 10:
        patterns.append({"pattern": f"{declining_bookings} members showing declining booking trends",
                         "member_count": declining_bookings, "severity": "medium"})

    return {
        "booking_cancellation_correlation": cancel_corr,
        "booking_visit_correlation": visit_corr,
        "overall_pattern": pattern,
        "high_risk_patterns": patterns,
    }


def summarise_behavior(
    segments: pd.DataFrame,
    declining: pd.DataFrame,
    increasing: pd.DataFrame,
    correlations: Dict,
) -> Dict:
    """Member counts, average rates and the headline trend, insight and recommendation."""
    total = len(segments)
    if total == 0:
        return {
            "total_members": 0, "active_members": 0, "inactive_members": 0, "at_risk_members": 0,
            "avg_cancellation_rate": 0.0, "avg_show_up_rate": 0.0,
            "top_trend": "No data available", "key_insight": "No data available",
            "recommendation": "No data available",
        }

    active = int(((segments["segment"] != SEGMENT_INACTIVE) & segments["last_activity_month"].notna()).sum())
    at_risk = int(segments["segment"].isin([SEGMENT_AT_RISK, SEGMENT_UNRELIABLE]).sum())
    avg_cancel = float(segments["cancellation_rate"].mean())
    avg_show = float(segments["show_up_rate"].mean())
    n_down, n_up = len(declining), len(increasing)

    top_trend = "Stable member behavior across the board"
    if n_down > n_up * 1.5:
        top_trend = f"{n_down} members showing declining engagement - immediate attention needed"
    elif n_up > n_down * 1.5:
        top_trend = f"{n_up} members showing improved engagement - positive momentum"
    elif any(p["severity"] == "high" for p in correlations["high_risk_patterns"]):
        top_trend = "High cancellation rates detected across multiple member segments"

    key_insight = f"Average cancellation rate is {avg_cancel:.1f}% with {avg_show:.1f}% show-up rate."
    if correlations["booking_cancellation_correlation"] > 0.5:
        key_insight += " Strong correlation between bookings and cancellations suggests capacity or scheduling issues."
    elif correlations["booking_visit_correlation"] < 0.6:
        key_insight += " Low booking-to-visit conversion indicates follow-up opportunities."

    recommendation = "Continue monitoring member engagement patterns."
    if at_risk > total * 0.2:
        recommendation = f"Focus on {at_risk} at-risk members with targeted retention campaigns."
    elif n_down > 15:
        recommendation = f"Implement re-engagement program for {n_down} members with declining trends."
    elif avg_cancel > 25:
        recommendation = "Review cancellation policies and implement reminder systems to reduce no-shows."

    return {
        "total_members": total,
        "active_members": active,
        "inactive_members": total - active,
        "at_risk_members": at_risk,
        "avg_cancellation_rate": avg_cancel,
        "avg_show_up_rate": avg_show,
        "top_trend": top_trend,
        "key_insight": key_insight,
        "recommendation": recommendation,
    }


def analyse_member_behavior(checkins: Optional[pd.DataFrame] = None,
                            monthly: Optional[pd.DataFrame] = None) -> Dict:
    """Every member behaviour view, from check-ins or a prepared monthly frame."""
    if monthly is None:
        monthly = member_monthly_activity(checkins)

    performance = compute_member_performance(monthly)
    segments = segment_members(performance, monthly)
    trends = compute_monthly_behavior(monthly)
    declining, increasing = detect_trend_changes(monthly)
    correlations = correlation_insights(monthly, performance, declining)
    logger.debug("Member behaviour over %d members, %d months", len(performance), len(trends))

    return {
        "monthly": monthly,
        "performance": performance,
        "segments": segments,
        "monthly_trends": trends,
        "financial": financial_summary(performance),
        "operational": operational_summary(performance),
        "churn_risk": churn_risk_members(monthly),
        "payment_risk": payment_risk_members(performance),
        "forecast": forecast_revenue(trends),
        "declining": top_changes(declining),
        "increasing": top_changes(increasing),
        "correlations": correlations,
        "summary": summarise_behavior(segments, declining, increasing, correlations),
    }
