"""
Data loading utilities with Streamlit caching.

Live data comes from Google Sheets through the per-entity fetchers; local CSV
snapshots (written by scripts/fetch_snapshots.py) are used when
USE_SNAPSHOTS is set, when no OAuth credentials are configured, or as a
fallback when a live fetch fails.
"""
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import pandas as pd
import streamlit as st

from src.config import SHEET_SOURCES, config
from src.data.fetchers import SheetFetcher, build_fetchers
from src.data.records import RECORD_TYPES, record_columns
from src.data.schema import ensure_column_types

logger = logging.getLogger(__name__)

DERIVED_DATASETS = {
    "discounts": "sales",
    "late_cancellations": "checkins",
}


class DataLoadError(Exception):
    """Raised when a dataset cannot be loaded from Sheets or from a snapshot."""
    pass


def _normalise_column_selection(columns: Optional[Sequence[str]]) -> Optional[list]:
    """Deduplicate and normalise a requested column list."""
    if not columns:
        return None
    return list(dict.fromkeys(str(col) for col in columns))


def _load_file(
    filepath: Path,
    columns: Optional[Sequence[str]] = None,
    dtype: Optional[Dict[str, Any]] = None,
) -> Optional[pd.DataFrame]:
    """Load a snapshot csv, optionally selecting columns."""
    selected_cols = _normalise_column_selection(columns)
    csv_path = filepath.with_suffix(".csv")
    if not csv_path.exists():
        return None
    if selected_cols:
        try:
            return pd.read_csv(csv_path, usecols=selected_cols, dtype=dtype)
        except ValueError:
            df = pd.read_csv(csv_path, dtype=dtype)
            keep_cols = [col for col in selected_cols if col in df.columns]
            return df[keep_cols]
    return pd.read_csv(csv_path, dtype=dtype)


def snapshot_path(entity: str) -> Path:
    return config.snapshots_dir / f"{entity}.csv"


def _text_dtypes(entity: str) -> Dict[str, Any]:
    record_type = RECORD_TYPES.get(entity)
    if record_type is None:
        return {}
    return {f.name: str for f in fields(record_type) if f.type is str}


def load_snapshot(entity: str, columns: Optional[Sequence[str]] = None) -> Optional[pd.DataFrame]:
    """Read a snapshot and restore its column types; None if absent."""
    df = _load_file(snapshot_path(entity), columns=columns, dtype=_text_dtypes(entity))
    if df is None:
        return None
    text_cols = [col for col in _text_dtypes(entity) if col in df.columns]
    df[text_cols] = df[text_cols].fillna("")
    return ensure_column_types(df, entity)


def save_snapshot(entity: str, df: pd.DataFrame) -> Path:
    """Write a frame to the snapshot directory."""
    path = snapshot_path(entity)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Wrote %d %s rows to %s", len(df), entity, path)
    return path


@st.cache_resource
def get_fetchers() -> Dict[str, SheetFetcher]:
    """Fetchers shared across sessions (one token cache, one limiter)."""
    return build_fetchers(cfg=config)


def _use_live_data() -> bool:
    return not config.use_snapshots and config.has_google_credentials


def _load_entity(entity: str) -> pd.DataFrame:
    if entity not in SHEET_SOURCES:
        raise DataLoadError(f"Unknown dataset '{entity}'")

    error = None
    if _use_live_data():
        result = get_fetchers()[entity].fetch()
        if result.ok:
            return result.data
        error = result.error
        logger.warning("%s; trying local snapshot", error)

    df = load_snapshot(entity)
    if df is not None:
        return df

    if error is None:
        error = f"No snapshot for {entity} in {config.snapshots_dir} and Google credentials are not configured"
    raise DataLoadError(error)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def load_dataset(name: str) -> pd.DataFrame:
    """
    Load a dataset by name (any SHEET_SOURCES entity, or a derived view).

    Raises DataLoadError on failure so the error is never cached.
    """
    from src.metrics.discounts import discount_rows
    from src.metrics.late_cancellations import late_cancellation_rows

    if name == "discounts":
        return discount_rows(_load_entity("sales"))
    if name == "late_cancellations":
        return late_cancellation_rows(_load_entity("checkins"))
    return _load_entity(name)


def try_load_dataset(name: str) -> Dict[str, Any]:
    """`{"data", "error"}` view of load_dataset for pages."""
    try:
        return {"data": load_dataset(name), "error": None}
    except DataLoadError as exc:
        source = DERIVED_DATASETS.get(name, name)
        record_type = RECORD_TYPES.get(source)
        empty = pd.DataFrame(columns=record_columns(record_type)) if record_type else pd.DataFrame()
        return {"data": empty, "error": str(exc)}


def clear_data_cache() -> None:
    """Drop cached datasets and fetcher results (the Retry action)."""
    load_dataset.clear()
    for fetcher in get_fetchers().values():
        fetcher.clear()


def get_data_status() -> Dict[str, Any]:
    """Source and snapshot availability per entity."""
    status = {
        "mode": "live" if _use_live_data() else "snapshots",
        "missing_settings": config.missing_google_settings(),
        "entities": {},
    }
    for entity, source in SHEET_SOURCES.items():
        path = snapshot_path(entity)
        status["entities"][entity] = {
            "range": source.range,
            "spreadsheet_configured": bool(config.spreadsheet_id(source.spreadsheet_key)),
            "snapshot_exists": path.exists(),
        }
    return status
