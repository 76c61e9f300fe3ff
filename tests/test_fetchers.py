"""
Tests for per-entity fetchers.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import AppConfig, SHEET_SOURCES
from src.data.fetchers import SheetFetcher, build_fetchers, fetch_all, payroll_payload
from src.data.sheets import SheetsAPIError


PAYROLL_ROW = [""] * 31
PAYROLL_ROW[1] = "Anu K"
PAYROLL_ROW[3] = "Kwality House"
PAYROLL_ROW[19] = "10"
PAYROLL_ROW[22] = "50"
PAYROLL_ROW[23] = "25000"
PAYROLL_ROW[24] = "2025-08-01"
PAYROLL_ROW[27] = "40"
PAYROLL_ROW[29] = "0.5"


class FakeClient:
    """Serves canned rows per range; counts calls."""

    def __init__(self, rows_by_range=None, error=None):
        self.rows_by_range = rows_by_range or {}
        self.error = error
        self.calls = []

    def fetch_values(self, spreadsheet_id, range_, value_render_option="UNFORMATTED_VALUE"):
        self.calls.append((spreadsheet_id, range_, value_render_option))
        if self.error is not None:
            raise self.error
        return self.rows_by_range.get(range_, [])


class BatchClient(FakeClient):
    """FakeClient that also answers batchGet requests."""

    def __init__(self, rows_by_range=None, error=None):
        super().__init__(rows_by_range, error)
        self.batch_calls = []

    def batch_fetch(self, spreadsheet_id, ranges, value_render_option="UNFORMATTED_VALUE"):
        self.batch_calls.append((spreadsheet_id, list(ranges), value_render_option))
        if self.error is not None:
            raise self.error
        return {range_: self.rows_by_range.get(range_, []) for range_ in ranges}


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_config(**overrides):
    values = dict(default_spreadsheet_id="sheet-default", payroll_spreadsheet_id="sheet-payroll")
    values.update(overrides)
    return AppConfig(**values)


def sessions_rows():
    return [["header"], ["T1", "", "", "Anu K", "S1", "PowerCycle", "20", "10"]]


class TestSheetFetcher:
    """Fetch, cache and error handling."""

    def test_fetch_maps_rows(self):
        client = FakeClient({"Sessions": sessions_rows()})
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], client, make_config())

        result = fetcher.fetch()

        assert result.ok
        assert len(result.records) == 1
        assert list(result.data["trainer_name"]) == ["Anu K"]
        assert client.calls == [("sheet-default", "Sessions", "FORMATTED_VALUE")]

    def test_per_sheet_spreadsheet_id(self):
        client = FakeClient({"Payroll": [["h"], PAYROLL_ROW]})
        SheetFetcher(SHEET_SOURCES["payroll"], client, make_config()).fetch()
        assert client.calls[0][0] == "sheet-payroll"

    def test_cached_within_ttl(self):
        clock = Clock()
        client = FakeClient({"Sessions": sessions_rows()})
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], client, make_config(), ttl=300, clock=clock)

        fetcher.fetch()
        clock.now = 299
        fetcher.fetch()
        assert len(client.calls) == 1

        clock.now = 301
        fetcher.fetch()
        assert len(client.calls) == 2

    def test_refetch_bypasses_cache(self):
        client = FakeClient({"Sessions": sessions_rows()})
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], client, make_config(), ttl=300, clock=Clock())
        fetcher.fetch()
        fetcher.refetch()
        assert len(client.calls) == 2

    def test_error_result_not_cached(self):
        client = FakeClient(error=SheetsAPIError(500, "backend error"))
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], client, make_config(), ttl=300, clock=Clock())

        result = fetcher.fetch()

        assert not result.ok
        assert result.error.startswith("Failed to load sessions data: Failed to fetch sheet data: 500")
        assert result.data.empty
        assert "trainer_name" in result.data.columns

        client.error = None
        client.rows_by_range = {"Sessions": sessions_rows()}
        assert fetcher.fetch().ok
        assert len(client.calls) == 2

    def test_unexpected_error_becomes_message(self):
        client = FakeClient(error=RuntimeError("boom"))
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], client, make_config(), ttl=300, clock=Clock())

        result = fetcher.fetch()

        assert not result.ok
        assert result.error == "Failed to load sessions data: boom"
        assert result.data.empty

    def test_missing_spreadsheet_id(self):
        client = FakeClient()
        fetcher = SheetFetcher(SHEET_SOURCES["sales"], client, AppConfig(default_spreadsheet_id="", sales_spreadsheet_id=""))

        result = fetcher.fetch()

        assert not result.ok
        assert "No spreadsheet ID configured" in result.error
        assert client.calls == []

    def test_header_only_sheet_is_empty_success(self):
        fetcher = SheetFetcher(SHEET_SOURCES["sessions"], FakeClient({"Sessions": [["header"]]}), make_config())
        result = fetcher.fetch()
        assert result.ok
        assert result.data.empty


class TestFetchAll:
    """Fetching every entity."""

    def test_one_fetcher_per_source(self):
        fetchers = build_fetchers(client=FakeClient(), cfg=make_config())
        assert set(fetchers) == set(SHEET_SOURCES)

    def test_failures_do_not_stop_others(self):
        cfg = make_config()
        good = SheetFetcher(SHEET_SOURCES["sessions"], FakeClient({"Sessions": sessions_rows()}), cfg)
        bad = SheetFetcher(SHEET_SOURCES["leads"], FakeClient(error=SheetsAPIError(429, "quota")), cfg)

        results = fetch_all({"sessions": good, "leads": bad})

        assert results["sessions"].ok
        assert not results["leads"].ok

    def test_shared_spreadsheet_uses_one_batch_call(self):
        client = BatchClient({"Payroll": [["h"], PAYROLL_ROW], "Checkins": [["h"]]})
        cfg = make_config()
        fetchers = {
            "payroll": SheetFetcher(SHEET_SOURCES["payroll"], client, cfg),
            "checkins": SheetFetcher(SHEET_SOURCES["checkins"], client, cfg),
        }

        results = fetch_all(fetchers)

        assert client.batch_calls == [("sheet-payroll", ["Payroll", "Checkins"], "UNFORMATTED_VALUE")]
        assert client.calls == []
        assert list(results) == ["payroll", "checkins"]
        assert len(results["payroll"].records) == 1
        assert results["checkins"].ok
        assert results["checkins"].data.empty

    def test_failed_batch_fails_every_entity(self):
        client = BatchClient(error=SheetsAPIError(503, "unavailable"))
        cfg = make_config()
        fetchers = {
            "payroll": SheetFetcher(SHEET_SOURCES["payroll"], client, cfg),
            "checkins": SheetFetcher(SHEET_SOURCES["checkins"], client, cfg),
        }

        results = fetch_all(fetchers)

        assert results["payroll"].error.startswith("Failed to load payroll data")
        assert results["checkins"].error.startswith("Failed to load checkins data")

    def test_fresh_entities_skip_the_batch(self):
        clock = Clock()
        client = BatchClient({"Payroll": [["h"], PAYROLL_ROW], "Checkins": [["h"]]})
        cfg = make_config()
        fetchers = {
            "payroll": SheetFetcher(SHEET_SOURCES["payroll"], client, cfg, ttl=300, clock=clock),
            "checkins": SheetFetcher(SHEET_SOURCES["checkins"], client, cfg, ttl=300, clock=clock),
        }
        fetch_all(fetchers)

        fetchers["checkins"].clear()
        fetch_all(fetchers)

        assert len(client.batch_calls) == 1
        assert client.calls == [("sheet-payroll", "Checkins", "UNFORMATTED_VALUE")]


class TestPayrollPayload:
    """JSON payload for payroll."""

    def test_payload(self):
        fetcher = SheetFetcher(SHEET_SOURCES["payroll"], FakeClient({"Payroll": [["h"], PAYROLL_ROW]}), make_config())

        payload = payroll_payload(fetcher)

        assert payload["count"] == 1
        row = payload["data"][0]
        assert row["teacher_name"] == "Anu K"
        assert row["month_start"] == datetime(2025, 8, 1).isoformat()
        assert row["conversion"] == "40.0%"
        assert row["retention"] == "50.0%"
        assert row["class_average_incl_empty"] == 5.0

    def test_error_payload(self):
        fetcher = SheetFetcher(SHEET_SOURCES["payroll"], FakeClient(error=SheetsAPIError(500)), make_config())
        assert payroll_payload(fetcher) == {"error": "Failed to load payroll data"}
