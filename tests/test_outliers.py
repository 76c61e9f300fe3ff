"""
Tests for the month deep dive.
"""
import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.metrics.outliers import (
    analyse_month,
    bottom_spenders,
    compute_spenders,
    customer_split,
    daily_breakdown,
    detect_outlier_months,
    lapsed_members,
    membership_breakdown,
    membership_moves,
    prepare_month,
    stacked_members,
    top_spenders,
    visit_patterns,
)

TODAY = "2025-09-15"


@pytest.fixture
def sales_df():
    rows = [
        # member, email, date, product, payment category, cleaned category, value, end, status, location, discount, pct, frozen
        ("M1", "m1@example.com", "2025-05-10", "Barre 8 Pack", "pack", "Class Packages", 4000, "2025-07-10",
         "succeeded", "Kwality House", 0, 0, False),
        ("M1", "m1@example.com", "2025-08-05", "Barre 8 Pack", "pack", "Class Packages", 4000, "2025-09-05",
         "succeeded", "Kwality House", 0, 0, False),
        ("M1", "m1@example.com", "2025-08-20", "Unlimited Month", "subscription", "Memberships", 9000, "2025-09-20",
         "succeeded", "Kwality House", 1000, 10, False),
        ("M2", "m2@example.com", "2025-08-10", "Newcomer 2 Week", "intro", "Newcomers Special", 1500, None,
         "succeeded", "Kwality House", 0, 0, False),
        ("M2", "m2@example.com", "2025-08-12", "Barre 8 Pack", "pack", "Class Packages", 4000, "2025-09-01",
         "succeeded", "Kwality House", 0, 0, False),
        ("", "e3@example.com", "2025-08-15", "Studio Single Class", "class", "Single Classes", 500, None,
         "succeeded", "Supreme HQ", 0, 0, False),
        ("M1", "m1@example.com", "2025-08-21", "Unlimited Month", "subscription", "Memberships", 9999, None,
         "failed", "Kwality House", 0, 0, False),
        ("M4", "m4@example.com", "2025-03-01", "Barre 8 Pack", "pack", "Class Packages", 3000, "2025-04-01",
         "succeeded", "Kwality House", 0, 0, False),
        ("M5", "m5@example.com", "2025-04-01", "Barre 8 Pack", "pack", "Class Packages", 5000, "2025-05-01",
         "succeeded", "Kwality House", 0, 0, True),
    ]
    cols = [
        "member_id", "customer_email", "payment_date", "cleaned_product", "payment_category", "cleaned_category",
        "payment_value", "sec_membership_end_date", "payment_status", "calculated_location",
        "discount_amount", "discount_percentage", "sec_membership_is_frozen",
    ]
    df = pd.DataFrame(rows, columns=cols)
    df["payment_date"] = pd.to_datetime(df["payment_date"])
    df["sec_membership_end_date"] = pd.to_datetime(df["sec_membership_end_date"])
    df["payment_value"] = df["payment_value"].astype(float)
    df["discount_amount"] = df["discount_amount"].astype(float)
    df["discount_percentage"] = df["discount_percentage"].astype(float)
    df["customer_name"] = df["member_id"].replace("", "Walk In")
    df["payment_item"] = ""
    return df


@pytest.fixture
def august(sales_df):
    return prepare_month(sales_df, "2025-08-01")


class TestPrepareMonth:
    """Month filtering and flags."""

    def test_only_succeeded_in_month(self, august):
        assert len(august) == 5
        assert august["payment_value"].sum() == 19000.0

    def test_new_customers(self, august):
        new = august[august["is_new"]]
        assert set(new["customer"]) == {"M2", "e3@example.com"}

    def test_stacked_when_membership_still_running(self, august):
        assert august.loc[august["is_stacked"], "payment_value"].sum() == 17000.0

    def test_location_filter(self, sales_df):
        month = prepare_month(sales_df, "2025-08-01", location="Supreme HQ")
        assert list(month["customer"]) == ["e3@example.com"]

    def test_empty_month(self, sales_df):
        month = prepare_month(sales_df, "2024-01-01")
        assert month.empty
        assert customer_split(month)["revenue"].sum() == 0.0
        assert daily_breakdown(month).empty


class TestBreakdowns:
    """Customer split, moves and per-day and per-product views."""

    def test_customer_split(self, august):
        split = customer_split(august).set_index("customer_type")

        assert split.loc["New", "revenue"] == 6000.0
        assert split.loc["New", "transactions"] == 3
        assert split.loc["New", "unique_members"] == 2
        assert split.loc["New", "atv"] == 2000.0
        assert split.loc["Repeat", "discounted_revenue"] == 9000.0
        assert split.loc["Repeat", "full_price_transactions"] == 1
        assert split.loc["Repeat", "avg_discount_pct"] == 10.0

    def test_membership_moves(self, august):
        assert membership_moves(august) == {"renewals": 0, "upgrades": 1, "downgrades": 0}

    def test_renewal(self, august):
        august.loc[august["cleaned_product"] == "Unlimited Month", "product"] = "Barre 8 Pack"
        assert membership_moves(august)["renewals"] == 1

    def test_stacked_members(self, august):
        stacked = stacked_members(august)

        assert list(stacked["customer"]) == ["M1"]
        assert stacked.iloc[0]["total_memberships"] == 2
        assert stacked.iloc[0]["total_paid"] == 13000.0
        assert stacked.iloc[0]["memberships"] == "Barre 8 Pack, Unlimited Month"

    def test_daily(self, august):
        daily = daily_breakdown(august).set_index("date")

        assert len(daily) == 5
        assert daily.loc[pd.Timestamp("2025-08-05"), "existing_client_revenue"] == 4000.0
        assert daily.loc[pd.Timestamp("2025-08-10"), "new_clients"] == 1
        assert daily.loc[pd.Timestamp("2025-08-10"), "multi_purchase_clients"] == 1
        assert daily.loc[pd.Timestamp("2025-08-15"), "multi_purchase_clients"] == 0

    def test_memberships_by_revenue(self, august):
        products = membership_breakdown(august)

        assert list(products["product"]) == ["Unlimited Month", "Barre 8 Pack", "Newcomer 2 Week", "Studio Single Class"]
        barre = products.iloc[1]
        assert barre["count"] == 2
        assert barre["avg_price"] == 4000.0
        assert barre["new_clients"] == 1
        assert barre["existing_clients"] == 1


class TestSpenders:
    """Spend ranking and membership status."""

    def test_ranking_and_status(self, august):
        spenders = compute_spenders(august, today=TODAY)

        assert list(spenders["customer"]) == ["M1", "M2", "e3@example.com"]
        m1 = spenders.iloc[0]
        assert m1["avg_transaction"] == 6500.0
        assert m1["last_membership"] == "Unlimited Month"
        assert m1["membership_status"] == "Active"
        assert m1["discount_received"] == 1000.0
        assert spenders.iloc[1]["membership_status"] == "Expired"
        assert spenders.iloc[2]["membership_status"] == "None"

    def test_top_and_bottom(self, august):
        spenders = compute_spenders(august, today=TODAY)

        assert list(top_spenders(spenders, is_new=True)["customer"]) == ["M2", "e3@example.com"]
        assert list(bottom_spenders(spenders, n=2)["customer"]) == ["e3@example.com", "M2"]

    def test_frozen_status(self, august):
        august["sec_membership_is_frozen"] = True
        spenders = compute_spenders(august, today=TODAY)
        assert spenders.iloc[0]["membership_status"] == "Frozen"


class TestLapsedMembers:
    """Ended, unfrozen memberships by lifetime value."""

    def test_lapsed(self, sales_df):
        lapsed = lapsed_members(sales_df, today=TODAY)

        assert list(lapsed["customer"]) == ["M2", "M4"]
        assert lapsed.iloc[0]["days_since_lapsed"] == 14
        assert lapsed.iloc[0]["lifetime_value"] == 5500.0
        assert lapsed.iloc[0]["last_membership_amount"] == 4000.0
        assert lapsed.iloc[1]["days_since_lapsed"] == 167

    def test_limit(self, sales_df):
        assert len(lapsed_members(sales_df, today=TODAY, limit=1)) == 1


class TestVisitsAndOutliers:
    """Visit ratios, outlier months and the full deep dive."""

    @pytest.fixture
    def checkins_df(self):
        return pd.DataFrame({
            "member_id": ["M1", "M1", "M2", "M2", "M1"],
            "email": ["m1@example.com", "m1@example.com", "m2@example.com", "m2@example.com", "m1@example.com"],
            "date_ist": pd.to_datetime(["2025-08-06", "2025-08-07", "2025-08-11", "2025-08-12", "2025-09-02"]),
            "checked_in": [True, True, True, False, True],
            "location": ["Kwality House"] * 5,
        })

    def test_visit_patterns(self, checkins_df):
        visits = visit_patterns(checkins_df, "2025-08-01", revenue=19000.0)

        assert visits["total_visits"] == 3
        assert visits["avg_visits_per_client"] == 1.5
        assert visits["visits_per_1000_revenue"] == pytest.approx(3 / 19)

    def test_no_checkins(self):
        visits = visit_patterns(None, "2025-08-01", revenue=0.0)
        assert visits == {"total_visits": 0, "avg_visits_per_client": 0.0, "visits_per_1000_revenue": 0.0}

    def test_outlier_months(self, sales_df):
        months = detect_outlier_months(sales_df).set_index("month_key")

        assert list(months.index) == list(pd.to_datetime(["2025-03-01", "2025-04-01", "2025-05-01", "2025-08-01"]))
        assert months.loc[pd.Timestamp("2025-08-01"), "is_outlier"]
        assert months["is_outlier"].sum() == 1

    def test_analyse_month(self, sales_df, checkins_df):
        result = analyse_month(sales_df, "2025-08-01", checkins=checkins_df, today=TODAY)

        assert result["total_revenue"] == 19000.0
        assert result["new_client_revenue"] == 6000.0
        assert result["existing_client_revenue"] == 13000.0
        assert result["stacked_revenue"] == 17000.0
        assert result["new_clients"] == 2
        assert result["existing_clients"] == 1
        assert result["upgrades"] == 1
        assert result["discount_given"] == 1000.0
        assert result["discounted_transactions"] == 1
        assert result["total_visits"] == 3
        assert len(result["lapsed_members"]) == 2
