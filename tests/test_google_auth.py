"""
Tests for the OAuth access-token cache.
"""
import pytest
import requests
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import AppConfig
from src.data.google_auth import GoogleAuthError, TokenCache, validate_google_config


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """Records token POSTs and replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_config(**overrides):
    values = dict(
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_refresh_token="refresh-token",
        google_token_url="https://oauth.test/token",
    )
    values.update(overrides)
    return AppConfig(**values)


class TestValidateGoogleConfig:
    """Missing OAuth settings are named in the error."""

    def test_complete_config_passes(self):
        validate_google_config(make_config())

    def test_missing_settings(self):
        with pytest.raises(GoogleAuthError) as exc:
            validate_google_config(make_config(google_client_secret="", google_refresh_token=""))
        assert "GOOGLE_CLIENT_SECRET" in str(exc.value)
        assert "GOOGLE_REFRESH_TOKEN" in str(exc.value)


class TestTokenCache:
    """Token refresh and reuse."""

    def test_refreshes_with_form_payload(self):
        session = FakeSession(FakeResponse(body={"access_token": "abc", "expires_in": 3600}))
        cache = TokenCache(make_config(), session=session, clock=Clock())

        assert cache.get_token() == "abc"
        call = session.calls[0]
        assert call["url"] == "https://oauth.test/token"
        assert call["data"] == {
            "client_id": "client-id",
            "client_secret": "client-secret",
            "refresh_token": "refresh-token",
            "grant_type": "refresh_token",
        }

    def test_reuses_token_until_buffer(self):
        clock = Clock()
        session = FakeSession(
            FakeResponse(body={"access_token": "first", "expires_in": 3600}),
            FakeResponse(body={"access_token": "second", "expires_in": 3600}),
        )
        cache = TokenCache(make_config(), session=session, clock=clock)

        assert cache.get_token() == "first"
        clock.now += 3600 - 301
        assert cache.get_token() == "first"
        assert len(session.calls) == 1

        # Inside the 5 minute buffer
        clock.now += 2
        assert cache.get_token() == "second"
        assert len(session.calls) == 2

    def test_default_expiry(self):
        clock = Clock()
        cache = TokenCache(make_config(), session=FakeSession(FakeResponse(body={"access_token": "abc"})), clock=clock)
        cache.get_token()
        assert cache._token.expires_at == clock.now + 3600

    def test_zero_expiry_is_respected(self):
        clock = Clock()
        session = FakeSession(FakeResponse(body={"access_token": "abc", "expires_in": 0}))
        cache = TokenCache(make_config(), session=session, clock=clock)
        cache.get_token()

        assert cache._token.expires_at == clock.now
        assert cache.has_valid_token is False

    def test_non_object_body(self):
        cache = TokenCache(make_config(), session=FakeSession(FakeResponse(body=["abc"])), clock=Clock())
        with pytest.raises(GoogleAuthError, match="no access_token"):
            cache.get_token()

    def test_invalidate_forces_refresh(self):
        session = FakeSession(
            FakeResponse(body={"access_token": "first"}),
            FakeResponse(body={"access_token": "second"}),
        )
        cache = TokenCache(make_config(), session=session, clock=Clock())
        cache.get_token()
        cache.invalidate()

        assert cache.has_valid_token is False
        assert cache.get_token() == "second"

    def test_http_error(self):
        cache = TokenCache(make_config(), session=FakeSession(FakeResponse(status_code=400, body={})), clock=Clock())
        with pytest.raises(GoogleAuthError, match="Token refresh failed: 400"):
            cache.get_token()

    def test_missing_access_token(self):
        cache = TokenCache(make_config(), session=FakeSession(FakeResponse(body={"expires_in": 10})), clock=Clock())
        with pytest.raises(GoogleAuthError):
            cache.get_token()

    def test_network_error_is_wrapped(self):
        session = FakeSession(requests.ConnectionError("down"))
        cache = TokenCache(make_config(), session=session, clock=Clock())
        with pytest.raises(GoogleAuthError, match="down"):
            cache.get_token()

    def test_failed_refresh_is_not_cached(self):
        session = FakeSession(
            FakeResponse(status_code=500, body={}),
            FakeResponse(body={"access_token": "ok"}),
        )
        cache = TokenCache(make_config(), session=session, clock=Clock())
        with pytest.raises(GoogleAuthError):
            cache.get_token()
        assert cache.get_token() == "ok"

    def test_missing_config_raises_before_request(self):
        session = FakeSession()
        cache = TokenCache(make_config(google_client_id=""), session=session, clock=Clock())
        with pytest.raises(GoogleAuthError):
            cache.get_token()
        assert session.calls == []
