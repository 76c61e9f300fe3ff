"""
Tests for sheet row mapping.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.mappers import (
    apply_discount_fallbacks,
    build_header_index,
    map_checkin_row,
    map_expiration_row,
    map_lead_row,
    map_new_client_row,
    map_payroll_row,
    map_recurring_row,
    map_sales_row,
    map_session_row,
    map_sheet_rows,
    parse_lead_date,
)
from src.data.records import SalesRecord


SALES_HEADERS = [
    "Member ID", "Customer Name", "Customer Email", "Payment Date", "Payment Value",
    "Payment VAT", "Payment Transaction ID", "Sale Item ID", "Calculated Location",
    "Cleaned Product", "Cleaned Category", "Mrp - Post Tax", "Discount Amount", "Discount Percentage",
]


def sales_row(value="1000", vat="152.54", mrp="", discount="", discount_pct=""):
    return [
        "M1", "Asha Rao", "asha@example.com", "2025-08-10", value,
        vat, "T1", "S1", "Kwality House", "Barre 8 Pack", "Class Packages",
        mrp, discount, discount_pct,
    ]


class TestSalesMapping:
    """Sales rows are mapped by header name."""

    def test_maps_by_header(self):
        record = map_sales_row(sales_row(), build_header_index(SALES_HEADERS))

        assert record.member_id == "M1"
        assert record.payment_date == datetime(2025, 8, 10)
        assert record.payment_value == 1000.0
        assert record.gross_revenue == 1000.0
        assert record.net_revenue == pytest.approx(847.46)
        assert record.calculated_location == "Kwality House"

    def test_alias_headers(self):
        headers = ["memberId", "paymentValue", "Discount Amount -Mrp- Payment Value"]
        record = map_sales_row(["M9", "500", "50"], build_header_index(headers))

        assert record.member_id == "M9"
        assert record.payment_value == 500.0
        assert record.discount_amount == 50.0

    def test_frozen_flag(self):
        headers = ["Member ID", "Sec. Membership Is Freezed"]
        assert map_sales_row(["M1", "TRUE"], build_header_index(headers)).sec_membership_is_frozen is True
        assert map_sales_row(["M1", ""], build_header_index(headers)).sec_membership_is_frozen is False

    def test_discount_from_mrp(self):
        record = map_sales_row(sales_row(value="800", vat="0", mrp="1000"), build_header_index(SALES_HEADERS))

        assert record.discount_amount == 200.0
        assert record.discount_percentage == 20.0

    def test_missing_columns_default(self):
        record = map_sales_row(["M1"], build_header_index(["Member ID"]))

        assert record.payment_value == 0.0
        assert record.payment_date is None
        assert record.cleaned_product == ""

    def test_header_index_keeps_first_position(self):
        index = build_header_index([" Member ID ", "Member ID", ""])
        assert index == {"Member ID": 0}


class TestDiscountFallbacks:
    """Discount amount / percentage derivation."""

    def test_amount_from_percentage(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=900, mrp_post_tax=1000, discount_percentage=10))
        # mrp > payment takes precedence over the percentage
        assert record.discount_amount == 100.0

    def test_amount_from_percentage_when_paid_in_full(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=0, mrp_post_tax=1000, discount_percentage=15))
        assert record.discount_amount == 150.0
        assert record.discount_percentage == 15.0

    def test_percentage_from_effective_mrp(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=750, discount_amount=250))
        assert record.discount_percentage == 25.0

    def test_pre_tax_mrp_used_when_post_tax_missing(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=300, mrp_pre_tax=400))
        assert record.discount_amount == 100.0
        assert record.discount_percentage == 25.0

    def test_rounds_to_two_decimals(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=200, mrp_post_tax=300))
        assert record.discount_percentage == 33.33

    def test_no_discount(self):
        record = apply_discount_fallbacks(SalesRecord(payment_value=1000, mrp_post_tax=1000))
        assert record.discount_amount == 0.0
        assert record.discount_percentage == 0.0


class TestFixedIndexMappers:
    """Mappers for sheets with a fixed column order."""

    def test_session_row(self):
        row = [
            "T1", "Anu", "K", "Anu K", "S1", "PowerCycle 45", "20", "15", "1", "16", "0",
            "Supreme HQ", "2025-08-04", "Monday", "07:30", "4500", "0",
        ]
        record = map_session_row(row)

        assert record.trainer_name == "Anu K"
        assert record.capacity == 20.0
        assert record.checked_in_count == 15.0
        assert record.fill_percentage == 75.0
        assert record.revenue == 4500.0
        assert record.date == datetime(2025, 8, 4)
        assert record.cleaned_class == ""

    def test_session_zero_capacity(self):
        record = map_session_row(["T1", "", "", "", "S1", "", "0", "5"])
        assert record.fill_percentage == 0.0

    def test_new_client_conversion_span_from_dates(self):
        row = [""] * 25
        row[0] = "M1"
        row[5] = "2025-07-01"
        row[21] = "2025-07-11"
        record = map_new_client_row(row)

        assert record.conversion_span == 10.0
        assert record.month_year == "2025-07"
        assert record.no_of_visits is None

    def test_new_client_sheet_span_wins(self):
        row = [""] * 25
        row[5] = "2025-07-01"
        row[21] = "2025-07-11"
        row[22] = "4"
        row[23] = "3"
        record = map_new_client_row(row)

        assert record.conversion_span == 3.0
        assert record.no_of_visits == 4.0

    def test_payroll_row(self):
        row = ["" for _ in range(31)]
        row[1] = "Anu K"
        row[3] = "Kwality House"
        row[19] = "10"
        row[21] = "8"
        row[22] = "80"
        row[23] = "25000"
        row[24] = "Aug 2025"
        row[27] = "0.45"
        row[29] = "60"
        record = map_payroll_row(row)

        assert record.total_sessions == 10.0
        assert record.class_average_incl_empty == 8.0
        assert record.class_average_excl_empty == 10.0
        assert record.month_start == datetime(2025, 8, 1)
        assert record.conversion_rate == pytest.approx(45.0)
        assert record.retention_rate == 60.0

    def test_expiration_row_defaults(self):
        record = map_expiration_row(["U1", "M1", "A", "B", "a@b.c", "Studio Annual", "2025-08-31", "HQ"])

        assert record.end_date == datetime(2025, 8, 31)
        assert record.current_usage == "-"
        assert record.sold_by == "-"
        assert record.frozen is False
        assert record.status == ""

    def test_checkin_row_flags(self):
        row = [""] * 27
        row[0] = "M1"
        row[7] = "TRUE"
        row[9] = "true"
        row[14] = "2025-08-05"
        record = map_checkin_row(row)

        assert record.checked_in is True
        assert record.complementary is False
        assert record.is_late_cancelled is True
        assert record.date_ist == datetime(2025, 8, 5)

    def test_recurring_row(self):
        row = [
            "T1", "Anu", "K", "Anu K", "S1", "PowerCycle 45", "20", "15", "1", "16", "0",
            "Supreme HQ", "2025-08-04", "Monday", "07:30", "4500", "0", "U1", "U2",
            "10", "3", "1", "1", "Cycle", "PowerCycle", "1",
            "12", "2", "10", "150", "240", "54000", "12.5", "15", "62.5%", "11.2", "Anu K, Rohan M",
        ]
        record = map_recurring_row(row)

        assert record.cleaned_class == "PowerCycle"
        assert record.day_of_week == "Monday"
        assert record.time == "07:30"
        assert record.fill_percentage == 75.0
        assert record.total_sessions == 12.0
        assert record.total_capacity == 240.0
        assert record.fill_rate == 62.5
        assert record.top_trainers == "Anu K, Rohan M"

    def test_recurring_short_row_defaults(self):
        record = map_recurring_row(["T1", "", "", "Anu K", "S1", "Barre", "0", "0"])
        assert record.total_sessions == 0.0
        assert record.top_trainers == ""
        assert record.fill_percentage == 0.0


class TestLeadMapping:
    """Lead dates are range-checked; numeric columns refuse dates."""

    NOW = datetime(2025, 9, 1)

    def test_future_and_old_dates_dropped(self):
        assert parse_lead_date("2025-10-01", self.NOW) is None
        assert parse_lead_date("2019-12-31", self.NOW) is None
        assert parse_lead_date("2024-06-01", self.NOW) == datetime(2024, 6, 1)

    def test_lead_row(self):
        row = [""] * 32
        row[0] = "L1"
        row[4] = "2025-08-02"
        row[6] = "Instagram"
        row[9] = "Trial Completed"
        row[26] = "2"
        row[27] = "12/08/2025"
        row[28] = "3"
        record = map_lead_row(row, now=self.NOW)

        assert record.created_at == datetime(2025, 8, 2)
        assert record.source == "Instagram"
        assert record.purchases_made == 2
        assert record.ltv == 0.0
        assert record.visits == 3


class TestMapSheetRows:
    """Whole-sheet mapping."""

    def test_header_only_is_empty(self):
        assert map_sheet_rows("sessions", [["Trainer ID"]]) == []
        assert map_sheet_rows("sessions", []) == []

    def test_skips_blank_rows(self):
        rows = [["header"], ["T1", "", "", "Anu"], [], ["", None, ""], ["T2", "", "", "Ravi"]]
        records = map_sheet_rows("sessions", rows)
        assert [r.trainer_name for r in records] == ["Anu", "Ravi"]

    def test_sales_uses_header(self):
        records = map_sheet_rows("sales", [SALES_HEADERS, sales_row()])
        assert len(records) == 1
        assert records[0].customer_email == "asha@example.com"

    def test_unknown_entity(self):
        with pytest.raises(KeyError):
            map_sheet_rows("nope", [["a"], ["b"]])
