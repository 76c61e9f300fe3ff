"""
Per-entity sheet fetchers.

A fetcher pulls its sheet range through the shared SheetsClient, maps the
rows to records and returns a FetchResult. Errors stop at this boundary and
become a message on the result; the caller decides whether to retry.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
import requests

from src.config import AppConfig, SHEET_SOURCES, SheetSource, config
from src.data.google_auth import GoogleAuthError
from src.data.mappers import map_sheet_rows
from src.data.records import RECORD_TYPES, records_to_frame
from src.data.sheets import SheetsAPIError, SheetsClient

logger = logging.getLogger(__name__)

# Expected failures are logged without a traceback; anything else still stops here.
EXPECTED_FETCH_ERRORS = (GoogleAuthError, SheetsAPIError, requests.RequestException, ValueError, KeyError)


@dataclass
class FetchResult:
    entity: str
    data: pd.DataFrame
    records: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SheetFetcher:
    """
    Fetch one entity with an in-memory TTL cache.

    Successful results are cached for `ttl` seconds; failures are returned but
    never cached, so the next call tries again.
    """

    def __init__(
        self,
        source: SheetSource,
        client: SheetsClient,
        cfg: AppConfig = config,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.client = client
        self.cfg = cfg
        self.ttl = cfg.cache_ttl_seconds if ttl is None else ttl
        self.clock = clock
        self._cached: Optional[FetchResult] = None
        self._cached_at: float = 0.0

    @property
    def entity(self) -> str:
        return self.source.entity

    @property
    def label(self) -> str:
        return self.source.label or self.source.entity

    @property
    def spreadsheet_id(self) -> str:
        return self.cfg.spreadsheet_id(self.source.spreadsheet_key)

    def is_fresh(self) -> bool:
        return self._cached is not None and (self.clock() - self._cached_at) < self.ttl

    def fetch_rows(self) -> List[List[Any]]:
        spreadsheet_id = self.spreadsheet_id
        if not spreadsheet_id:
            raise ValueError(f"No spreadsheet ID configured for '{self.source.spreadsheet_key}'")
        return self.client.fetch_values(
            spreadsheet_id,
            self.source.range,
            value_render_option=self.source.value_render_option,
        )

    def fetch(self, force: bool = False) -> FetchResult:
        if not force and self.is_fresh():
            return self._cached

        try:
            rows = self.fetch_rows()
        except Exception as exc:
            return self.failed(exc)
        return self.accept_rows(rows)

    def accept_rows(self, rows: List[List[Any]]) -> FetchResult:
        """Map fetched rows and cache the result."""
        try:
            records = map_sheet_rows(self.entity, rows)
        except Exception as exc:
            return self.failed(exc)

        result = FetchResult(
            entity=self.entity,
            data=records_to_frame(records, RECORD_TYPES[self.entity]),
            records=records,
            fetched_at=datetime.now(),
        )
        logger.info("Loaded %d %s records", len(records), self.label)
        self._cached = result
        self._cached_at = self.clock()
        return result

    def failed(self, exc: Exception) -> FetchResult:
        """Error result for `exc`; never cached."""
        if isinstance(exc, EXPECTED_FETCH_ERRORS):
            logger.error("Failed to load %s data: %s", self.label, exc)
        else:
            logger.exception("Unexpected error loading %s data", self.label)
        return FetchResult(
            entity=self.entity,
            data=records_to_frame([], RECORD_TYPES[self.entity]),
            error=f"Failed to load {self.label} data: {exc}",
            fetched_at=datetime.now(),
        )

    def refetch(self) -> FetchResult:
        """Fetch again, bypassing the cache."""
        return self.fetch(force=True)

    def clear(self) -> None:
        self._cached = None


def build_fetchers(client: Optional[SheetsClient] = None, cfg: AppConfig = config) -> Dict[str, SheetFetcher]:
    """One fetcher per configured sheet source, sharing a client."""
    client = client or SheetsClient(cfg)
    return {entity: SheetFetcher(source, client, cfg) for entity, source in SHEET_SOURCES.items()}


def fetch_batch(fetchers: List[SheetFetcher]) -> Dict[str, FetchResult]:
    """
    Fetch several entities from one spreadsheet with a single batchGet call.

    All fetchers must share a client, spreadsheet and render option. A failed
    call fails every entity in the batch.
    """
    first = fetchers[0]
    ranges = [fetcher.source.range for fetcher in fetchers]
    try:
        rows_by_range = first.client.batch_fetch(
            first.spreadsheet_id,
            ranges,
            value_render_option=first.source.value_render_option,
        )
    except Exception as exc:
        return {fetcher.entity: fetcher.failed(exc) for fetcher in fetchers}
    return {fetcher.entity: fetcher.accept_rows(rows_by_range.get(fetcher.source.range, [])) for fetcher in fetchers}


def _batch_groups(fetchers: Dict[str, SheetFetcher]) -> List[List[SheetFetcher]]:
    """Group fetchers that can share one batchGet call, keeping entity order."""
    groups: Dict[Tuple, List[SheetFetcher]] = {}
    for fetcher in fetchers.values():
        key = (id(fetcher.client), fetcher.spreadsheet_id, fetcher.source.value_render_option)
        if not fetcher.spreadsheet_id:
            key = (id(fetcher), fetcher.entity)
        groups.setdefault(key, []).append(fetcher)
    return list(groups.values())


def fetch_all(fetchers: Dict[str, SheetFetcher], force: bool = False) -> Dict[str, FetchResult]:
    """
    Fetch every entity; requests are paced by the client's limiter.

    Stale entities that live in the same spreadsheet are fetched together in
    one batchGet call; fresh ones come from their fetcher's cache.
    """
    results = {}
    stale = {}
    for entity, fetcher in fetchers.items():
        if not force and fetcher.is_fresh():
            results[entity] = fetcher.fetch()
        else:
            stale[entity] = fetcher

    for group in _batch_groups(stale):
        if len(group) == 1:
            results[group[0].entity] = group[0].fetch(force=True)
        else:
            results.update(fetch_batch(group))

    results = {entity: results[entity] for entity in fetchers}
    failed = [entity for entity, result in results.items() if not result.ok]
    if failed:
        logger.warning("Fetch finished with errors for: %s", ", ".join(failed))
    return results


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def payroll_payload(fetcher: SheetFetcher) -> Dict[str, Any]:
    """
    JSON body of the payroll endpoint: `{"data": [...], "count": n}`.

    Failures return `{"error": "Failed to load payroll data"}`.
    """
    result = fetcher.fetch()
    if not result.ok:
        return {"error": "Failed to load payroll data"}

    data = []
    for record in result.records:
        row = {key: _json_value(value) for key, value in asdict(record).items()}
        row["conversion"] = f"{record.conversion_rate}%"
        row["retention"] = f"{record.retention_rate}%"
        data.append(row)

    return {"data": data, "count": len(data)}
