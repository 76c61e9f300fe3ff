"""
OAuth2 access-token cache for the Google Sheets API.

Holds a single bearer token in memory and exchanges the configured refresh
token for a new one when the cached token is missing or within the expiry
buffer.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from src.config import AppConfig, config

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class GoogleAuthError(Exception):
    """Raised when an access token cannot be obtained."""
    pass


@dataclass
class CachedToken:
    access_token: str
    expires_at: float


def validate_google_config(cfg: AppConfig = config) -> None:
    """Raise GoogleAuthError naming any missing OAuth settings."""
    missing = cfg.missing_google_settings()
    if missing:
        raise GoogleAuthError(f"Missing Google OAuth settings: {', '.join(missing)}")


class TokenCache:
    """
    Refresh-token based access-token cache.

    `get_token()` returns the cached token while it is more than
    `expiry_buffer` seconds from expiring, otherwise POSTs the refresh grant
    to the token endpoint. Refreshes are serialised by a lock.
    """

    def __init__(
        self,
        cfg: AppConfig = config,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.clock = clock
        self.expiry_buffer = cfg.token_expiry_buffer_seconds
        self._token: Optional[CachedToken] = None
        self._lock = threading.Lock()

    @property
    def has_valid_token(self) -> bool:
        token = self._token
        return token is not None and self.clock() < token.expires_at - self.expiry_buffer

    def get_token(self) -> str:
        with self._lock:
            if self.has_valid_token:
                return self._token.access_token
            self._token = self._refresh()
            return self._token.access_token

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes."""
        with self._lock:
            self._token = None

    def _refresh(self) -> CachedToken:
        validate_google_config(self.cfg)

        payload = {
            "client_id": self.cfg.google_client_id,
            "client_secret": self.cfg.google_client_secret,
            "refresh_token": self.cfg.google_refresh_token,
            "grant_type": "refresh_token",
        }

        logger.debug("Refreshing Google access token")
        try:
            resp = self.session.post(
                self.cfg.google_token_url,
                data=payload,
                timeout=self.cfg.request_timeout,
            )
        except requests.RequestException as exc:
            raise GoogleAuthError(f"Token refresh failed: {exc}") from exc

        if not resp.ok:
            logger.error("Token refresh failed with HTTP %s", resp.status_code)
            raise GoogleAuthError(f"Token refresh failed: {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise GoogleAuthError("Token refresh failed: invalid JSON response") from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise GoogleAuthError("Token refresh failed: no access_token in response")

        expires_in = body.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        return CachedToken(access_token=access_token, expires_at=self.clock() + float(expires_in))
