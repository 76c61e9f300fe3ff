"""
Tests for member behaviour analytics.
"""
import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.metrics.member_behavior import (
    SEGMENT_ENGAGED,
    SEGMENT_HIGH_VALUE,
    SEGMENT_INACTIVE,
    SEGMENT_RELIABLE,
    SEGMENT_UNRELIABLE,
    analyse_member_behavior,
    churn_risk_members,
    classify_member,
    compute_member_performance,
    compute_monthly_behavior,
    correlation_insights,
    detect_trend_changes,
    forecast_revenue,
    member_monthly_activity,
    payment_risk_members,
    pearson,
    segment_members,
    summarise_behavior,
)

MONTHS = pd.date_range("2025-03-01", periods=6, freq="MS")


def member_months(member_id, booked, visits, cancellations=None, paid=None, unpaid=None):
    """Monthly rows for one member, oldest month first."""
    n = len(booked)
    return pd.DataFrame({
        "member_id": member_id,
        "full_name": f"Member {member_id}",
        "email": f"{member_id.lower()}@example.com",
        "month_key": MONTHS[-n:],
        "booked": [float(v) for v in booked],
        "visits": [float(v) for v in visits],
        "cancellations": [float(v) for v in (cancellations or [0] * n)],
        "paid_amount": [float(v) for v in (paid or [0] * n)],
        "unpaid_amount": [float(v) for v in (unpaid or [0] * n)],
    })


@pytest.fixture
def monthly():
    return pd.concat([
        member_months("M1", [5, 5, 5, 2, 2, 1], [4, 4, 4, 1, 1, 0], cancellations=[0, 0, 0, 1, 1, 1]),
        member_months("M2", [2, 2, 2, 4, 4, 4], [2, 2, 2, 4, 4, 4]),
        member_months("M3", [3, 3], [3, 3]),
    ], ignore_index=True)


@pytest.fixture
def checkins():
    return pd.DataFrame({
        "member_id": ["M1", "M1", "M1", ""],
        "first_name": ["Asha", "Asha", "Asha", "Ravi"],
        "last_name": ["Rao", "Rao", "Rao", ""],
        "email": ["asha@example.com"] * 3 + ["ravi@example.com"],
        "date_ist": pd.to_datetime(["2025-08-04", "2025-08-05", "2025-09-01", "2025-08-10"]),
        "checked_in": [True, False, True, True],
        "is_late_cancelled": [False, True, False, False],
        "paid": [500.0, 0.0, 500.0, 800.0],
    })


class TestMonthlyActivity:
    """Check-ins rolled up per member and month."""

    def test_rollup(self, checkins):
        monthly = member_monthly_activity(checkins)

        assert list(monthly["member_id"]) == ["M1", "M1", "ravi@example.com"]
        august = monthly.iloc[0]
        assert august["month_key"] == pd.Timestamp("2025-08-01")
        assert august["full_name"] == "Asha Rao"
        assert august["booked"] == 2
        assert august["visits"] == 1
        assert august["cancellations"] == 1
        assert august["paid_amount"] == 500.0
        assert august["unpaid_amount"] == 0.0

    def test_empty(self):
        assert member_monthly_activity(pd.DataFrame()).empty


class TestPerformanceAndSegments:
    """Per-member rates and segment rules."""

    def test_rates(self, checkins):
        perf = compute_member_performance(member_monthly_activity(checkins)).set_index("member_id")
        asha = perf.loc["M1"]

        assert asha["total_bookings"] == 3
        assert asha["cancellation_rate"] == pytest.approx(100 / 3)
        assert asha["show_up_rate"] == pytest.approx(200 / 3)
        assert asha["payment_compliance"] == 100.0
        assert asha["avg_transaction_value"] == 500.0

    def test_compliance_with_unpaid(self):
        monthly = member_months("M9", [4], [4], paid=[300], unpaid=[100])
        perf = compute_member_performance(monthly)

        assert perf.iloc[0]["payment_compliance"] == 75.0
        risk = payment_risk_members(perf)
        assert list(risk["member_id"]) == ["M9"]

    def test_segments_from_checkins(self, checkins):
        monthly = member_monthly_activity(checkins)
        segments = segment_members(compute_member_performance(monthly), monthly).set_index("member_id")

        assert segments.loc["M1", "segment"] == SEGMENT_UNRELIABLE
        assert segments.loc["ravi@example.com", "segment"] == SEGMENT_INACTIVE
        assert segments.loc["M1", "last_activity_month"] == pd.Timestamp("2025-09-01")

    @pytest.mark.parametrize("row,expected", [
        ({"total_paid": 25000, "total_visits": 1, "show_up_rate": 10, "cancellation_rate": 90,
          "payment_compliance": 10}, SEGMENT_HIGH_VALUE),
        ({"total_paid": 0, "total_visits": 20, "show_up_rate": 85, "cancellation_rate": 50,
          "payment_compliance": 100}, SEGMENT_ENGAGED),
        ({"total_paid": 0, "total_visits": 12, "show_up_rate": 75, "cancellation_rate": 10,
          "payment_compliance": 100}, SEGMENT_RELIABLE),
        ({"total_paid": 0, "total_visits": 12, "show_up_rate": 75, "cancellation_rate": 10,
          "payment_compliance": 60}, SEGMENT_UNRELIABLE),
    ])
    def test_classify_order(self, row, expected):
        row = dict(row, last_activity_month=pd.Timestamp("2025-08-01"))
        assert classify_member(row) == expected

    def test_at_risk(self):
        row = {"total_paid": 0, "total_visits": 6, "show_up_rate": 65, "cancellation_rate": 10,
               "payment_compliance": 100, "last_activity_month": pd.Timestamp("2025-08-01")}
        assert classify_member(row) == "at-risk"


class TestTrends:
    """Churn, trend changes and forecast."""

    def test_churn_risk(self, monthly):
        risk = churn_risk_members(monthly)

        assert list(risk["member_id"]) == ["M1"]
        assert risk.iloc[0]["churn_score"] == 100.0
        assert risk.iloc[0]["decline_rate"] == pytest.approx(250 / 3)
        assert risk.iloc[0]["last_active_month"] == pd.Timestamp("2025-07-01")

    def test_trend_changes(self, monthly):
        declining, increasing = detect_trend_changes(monthly)

        assert list(declining["member_id"].unique()) == ["M1"]
        assert list(declining["metric"]) == ["cancellations", "visits", "bookings"]
        assert declining.iloc[0]["change_rate"] == -100.0
        assert set(increasing["metric"]) == {"bookings", "attendance"}
        assert set(increasing["member_id"]) == {"M2"}

    def test_short_history_ignored(self):
        declining, increasing = detect_trend_changes(member_months("M3", [9, 1], [9, 1]))
        assert declining.empty
        assert increasing.empty

    def test_forecast_follows_latest_month(self):
        trends = pd.DataFrame({
            "month_key": pd.to_datetime(["2025-06-01", "2025-07-01", "2025-08-01"]),
            "revenue": [100.0, 200.0, 300.0],
        })
        forecast = forecast_revenue(trends)

        assert list(forecast["month_key"]) == list(pd.to_datetime(["2025-09-01", "2025-10-01", "2025-11-01"]))
        assert list(forecast["forecast_revenue"]) == pytest.approx([210.0, 216.0, 220.0])
        assert list(forecast["confidence"]) == [75, 65, 55]

    def test_monthly_behavior_newest_first(self, monthly):
        trends = compute_monthly_behavior(monthly)
        assert trends.iloc[0]["month_key"] == pd.Timestamp("2025-08-01")
        assert trends.iloc[0]["bookings"] == 8


class TestCorrelationsAndSummary:
    """Correlations and headline text."""

    def test_pearson(self):
        assert pearson([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert pearson([1, 1], [2, 3]) == 0.0
        assert pearson([], []) == 0.0

    def test_strong_conversion_pattern(self):
        monthly = member_months("M2", [2, 2, 2, 4, 4, 4], [2, 2, 2, 4, 4, 4])
        perf = compute_member_performance(monthly)
        insights = correlation_insights(monthly, perf, pd.DataFrame(columns=["metric"]))

        assert insights["booking_cancellation_correlation"] == 0.0
        assert insights["overall_pattern"] == "Neutral booking behavior | Strong booking-to-visit conversion"

    def test_empty_summary(self):
        summary = summarise_behavior(pd.DataFrame(), pd.DataFrame(), pd.DataFrame(), {})
        assert summary["top_trend"] == "No data available"

    def test_analyse(self, checkins):
        result = analyse_member_behavior(checkins)

        assert result["summary"]["total_members"] == 2
        assert result["operational"]["total_bookings"] == 4
        assert result["financial"]["total_revenue"] == 1800.0
        assert set(result) >= {"segments", "churn_risk", "forecast", "declining", "increasing", "correlations"}
