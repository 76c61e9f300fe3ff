"""
Google Sheets API v4 client (values.get and values.batchGet).
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from src.config import AppConfig, config
from src.data.google_auth import TokenCache
from src.data.rate_limiter import get_shared_limiter

logger = logging.getLogger(__name__)


class SheetsAPIError(Exception):
    """Non-2xx response from the Sheets API."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Failed to fetch sheet data: {status} - {body[:300]}")


class SheetsClient:
    """
    Thin Sheets client.

    Every call runs inside the limiter, and the bearer token is read inside the
    queued call so a refresh happens at dispatch time.
    """

    def __init__(
        self,
        cfg: AppConfig = config,
        token_cache: Optional[TokenCache] = None,
        limiter=None,
        session: Optional[requests.Session] = None,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.token_cache = token_cache or TokenCache(cfg, session=self.session)
        self.limiter = limiter or get_shared_limiter()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token_cache.get_token()}"}

    def _get(self, url: str, params) -> Dict[str, Any]:
        resp = self.session.get(url, params=params, headers=self._headers(), timeout=self.cfg.request_timeout)
        if not resp.ok:
            logger.error("Sheets API returned HTTP %s for %s", resp.status_code, url)
            raise SheetsAPIError(resp.status_code, resp.text)
        body = resp.json()
        if not isinstance(body, dict):
            raise SheetsAPIError(resp.status_code, f"Unexpected response body: {resp.text[:200]}")
        return body

    def fetch_values(
        self,
        spreadsheet_id: str,
        range_: str,
        value_render_option: str = "UNFORMATTED_VALUE",
        date_time_render_option: str = "FORMATTED_STRING",
    ) -> List[List[Any]]:
        """Fetch one range; returns the `values` rows or an empty list."""
        url = f"{self.cfg.sheets_base_url}/{spreadsheet_id}/values/{quote(range_, safe='')}"
        params = {
            "valueRenderOption": value_render_option,
            "dateTimeRenderOption": date_time_render_option,
        }

        def request():
            logger.debug("Fetching %s from spreadsheet %s", range_, spreadsheet_id)
            return self._get(url, params).get("values") or []

        return self.limiter.execute(request)

    def batch_fetch(
        self,
        spreadsheet_id: str,
        ranges: List[str],
        value_render_option: str = "UNFORMATTED_VALUE",
        date_time_render_option: str = "FORMATTED_STRING",
    ) -> Dict[str, List[List[Any]]]:
        """
        Fetch several ranges in one call; result keys follow request order.

        Results are keyed by range, so each range may be requested only once.
        """
        duplicates = sorted({r for r in ranges if ranges.count(r) > 1})
        if duplicates:
            raise ValueError(f"Duplicate ranges in batch request: {duplicates}")

        url = f"{self.cfg.sheets_base_url}/{spreadsheet_id}/values:batchGet"
        params = [("ranges", r) for r in ranges]
        params += [
            ("valueRenderOption", value_render_option),
            ("dateTimeRenderOption", date_time_render_option),
        ]

        def request():
            logger.debug("Batch fetching %d ranges from spreadsheet %s", len(ranges), spreadsheet_id)
            value_ranges = self._get(url, params).get("valueRanges") or []
            result = {}
            for index, value_range in enumerate(value_ranges):
                if index < len(ranges):
                    result[ranges[index]] = value_range.get("values") or []
            return result

        return self.limiter.execute(request)
