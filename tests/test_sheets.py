"""
Tests for the Sheets API client.
"""
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import AppConfig
from src.data.sheets import SheetsAPIError, SheetsClient


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body or {}
        self.text = text

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return self.response


class FakeTokenCache:
    def __init__(self):
        self.calls = 0

    def get_token(self):
        self.calls += 1
        return "tok"


class InlineLimiter:
    """Runs requests immediately, counting them."""

    def __init__(self):
        self.executed = 0

    def execute(self, fn):
        self.executed += 1
        return fn()


def make_client(response):
    cfg = AppConfig(sheets_base_url="https://sheets.test/v4/spreadsheets", request_timeout=12)
    session = FakeSession(response)
    limiter = InlineLimiter()
    tokens = FakeTokenCache()
    return SheetsClient(cfg, token_cache=tokens, limiter=limiter, session=session), session, limiter, tokens


class TestFetchValues:
    """Single-range fetch."""

    def test_returns_values(self):
        client, session, limiter, tokens = make_client(FakeResponse(body={"values": [["a", "b"], [1, 2]]}))

        rows = client.fetch_values("sheet123", "Sales", value_render_option="FORMATTED_VALUE")

        assert rows == [["a", "b"], [1, 2]]
        call = session.calls[0]
        assert call["url"] == "https://sheets.test/v4/spreadsheets/sheet123/values/Sales"
        assert call["params"] == {
            "valueRenderOption": "FORMATTED_VALUE",
            "dateTimeRenderOption": "FORMATTED_STRING",
        }
        assert call["headers"] == {"Authorization": "Bearer tok"}
        assert call["timeout"] == 12
        assert limiter.executed == 1
        assert tokens.calls == 1

    def test_range_is_url_encoded(self):
        client, session, _, _ = make_client(FakeResponse(body={"values": []}))
        client.fetch_values("s", "◉ Leads")
        assert session.calls[0]["url"].endswith("/values/%E2%97%89%20Leads")

        client.fetch_values("s", "Expirations!A:Z")
        assert session.calls[1]["url"].endswith("/values/Expirations%21A%3AZ")

    def test_missing_values_is_empty(self):
        client, _, _, _ = make_client(FakeResponse(body={"range": "Sales!A1:Z1"}))
        assert client.fetch_values("s", "Sales") == []

    def test_http_error(self):
        client, _, _, _ = make_client(FakeResponse(status_code=403, text="PERMISSION_DENIED" * 50))
        with pytest.raises(SheetsAPIError) as exc:
            client.fetch_values("s", "Sales")

        assert exc.value.status == 403
        message = str(exc.value)
        assert message.startswith("Failed to fetch sheet data: 403 - PERMISSION_DENIED")
        assert len(message) <= len("Failed to fetch sheet data: 403 - ") + 300


class TestBatchFetch:
    """Multi-range fetch."""

    def test_keys_follow_request_order(self):
        body = {"valueRanges": [{"values": [["x"]]}, {}]}
        client, session, limiter, _ = make_client(FakeResponse(body=body))

        result = client.batch_fetch("s", ["Sales", "Sessions"])

        assert result == {"Sales": [["x"]], "Sessions": []}
        params = session.calls[0]["params"]
        assert ("ranges", "Sales") in params
        assert ("ranges", "Sessions") in params
        assert session.calls[0]["url"].endswith("/s/values:batchGet")
        assert limiter.executed == 1

    def test_duplicate_ranges_rejected(self):
        client, session, limiter, _ = make_client(FakeResponse(body={"valueRanges": []}))

        with pytest.raises(ValueError, match="Sales"):
            client.batch_fetch("s", ["Sales", "Sessions", "Sales"])

        assert session.calls == []
        assert limiter.executed == 0


def test_non_object_body_is_api_error():
    client, _, _, _ = make_client(FakeResponse(body=[["a"]], text='[["a"]]'))
    with pytest.raises(SheetsAPIError):
        client.fetch_values("s", "Sales")
