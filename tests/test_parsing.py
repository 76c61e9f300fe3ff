"""
Tests for cell parsing helpers.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.parsing import (
    parse_numeric_value,
    parse_strict_number,
    parse_date_value,
    parse_bool,
    normalise_rate,
    safe_get,
    cell,
    month_key,
    days_between,
)


class TestParseNumericValue:
    """Tests for lenient numeric parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("₹1,234.50", 1234.5),
        ("45%", 45.0),
        ("  12 ", 12.0),
        ("-3.5", -3.5),
        (7, 7.0),
        (2.25, 2.25),
    ])
    def test_parses_numbers(self, raw, expected):
        assert parse_numeric_value(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "   ", "-", "n/a", float("nan")])
    def test_falls_back_to_zero(self, raw):
        assert parse_numeric_value(raw) == 0.0

    def test_bool_is_numeric(self):
        assert parse_numeric_value(True) == 1.0


class TestParseStrictNumber:
    """Strict parsing refuses date-like strings."""

    def test_date_strings_are_zero(self):
        assert parse_strict_number("12/08/2025") == 0.0
        assert parse_strict_number("2025-08-12") == 0.0

    def test_plain_numbers_parse(self):
        assert parse_strict_number("4") == 4.0
        assert parse_strict_number(3) == 3.0


class TestParseDateValue:
    """Tests for date parsing."""

    def test_iso_date(self):
        assert parse_date_value("2025-08-15") == datetime(2025, 8, 15)

    def test_day_first(self):
        assert parse_date_value("03/04/2025") == datetime(2025, 4, 3)

    def test_day_first_with_time(self):
        assert parse_date_value("03/04/2025 18:30:00") == datetime(2025, 4, 3, 18, 30)

    def test_serial_number(self):
        # 45658 is 2025-01-01 in the 1899-12-30 serial system
        assert parse_date_value(45658) == datetime(2025, 1, 1)

    def test_serial_number_as_text(self):
        assert parse_date_value("45658") == datetime(2025, 1, 1)

    def test_month_label(self):
        assert parse_date_value("Aug 2025") == datetime(2025, 8, 1)

    @pytest.mark.parametrize("raw", [None, "", "-", "not a date", 0, True])
    def test_unparseable_is_none(self, raw):
        assert parse_date_value(raw) is None

    def test_datetime_passes_through(self):
        value = datetime(2024, 5, 6, 7, 8)
        assert parse_date_value(value) is value


class TestSmallHelpers:
    """Tests for bool, rate and row helpers."""

    def test_parse_bool(self):
        assert parse_bool("TRUE") is True
        assert parse_bool(" true ") is True
        assert parse_bool("FALSE") is False
        assert parse_bool("yes") is False
        assert parse_bool(None) is False
        assert parse_bool(True) is True

    def test_normalise_rate(self):
        assert normalise_rate(0.45) == pytest.approx(45.0)
        assert normalise_rate(1) == 100
        assert normalise_rate(45) == 45
        assert normalise_rate(0) == 0

    def test_safe_get(self):
        row = ["  a ", None, "", 5]
        assert safe_get(row, 0) == "a"
        assert safe_get(row, 1) == ""
        assert safe_get(row, 2, "x") == "x"
        assert safe_get(row, 3) == "5"
        assert safe_get(row, 10, "-") == "-"

    def test_cell(self):
        assert cell([1, 2], 1) == 2
        assert cell([1, 2], 2) is None

    def test_month_key(self):
        assert month_key(datetime(2025, 3, 9)) == "2025-03"
        assert month_key(None) == ""

    def test_days_between_rounds_up(self):
        start = datetime(2025, 1, 1)
        assert days_between(start, datetime(2025, 1, 3)) == 2
        assert days_between(start, datetime(2025, 1, 3, 1)) == 3
        assert days_between(datetime(2025, 1, 5), start) == 0
        assert days_between(None, start) == 0
