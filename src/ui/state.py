"""
Session state management for Streamlit app.
"""
import streamlit as st
from typing import Optional, Dict, Any, List

import pandas as pd

from src.metrics.periods import COMPARE_PREVIOUS_MONTH, COMPARE_PREVIOUS_PERIOD


# =============================================================================
# DEFAULT VALUES
# =============================================================================

DEFAULTS = {
    "location": "All",
    "anchor_month": None,
    "compare_mode": COMPARE_PREVIOUS_MONTH,
    "date_range": None,
    "sales_dimension": "cleaned_category",
    "session_dimension": "cleaned_class",
    "lead_dimension": "source",
}

# Column holding the studio location, per entity
LOCATION_COLUMNS = {
    "sales": "calculated_location",
    "discounts": "calculated_location",
    "sessions": "location",
    "new_clients": "first_visit_location",
    "payroll": "location",
    "expirations": "home_location",
    "leads": "center",
    "checkins": "location",
    "late_cancellations": "location",
    "recurring": "location",
    "teacher_recurring": "location",
}

COMPARE_MODE_LABELS = {
    COMPARE_PREVIOUS_MONTH: "Last month vs month before",
    COMPARE_PREVIOUS_PERIOD: "Date range vs previous period",
}


# =============================================================================
# STATE HELPERS
# =============================================================================

def init_state():
    """Initialize all session state keys with defaults."""
    for key, default in DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = default


def get_state(key: str) -> Any:
    """Get state value with default fallback."""
    init_state()
    return st.session_state.get(key, DEFAULTS.get(key))


def set_state(key: str, value: Any):
    """Set state value."""
    st.session_state[key] = value


# =============================================================================
# FILTER HELPERS
# =============================================================================

def get_filters() -> Dict[str, Any]:
    """Get all current filter values."""
    return {
        "location": get_state("location"),
        "anchor_month": get_state("anchor_month"),
        "compare_mode": get_state("compare_mode"),
        "date_range": get_state("date_range"),
    }


def comparison_kwargs() -> Dict[str, Any]:
    """anchor / mode / date_range arguments for the *_metric_cards builders."""
    mode = get_state("compare_mode")
    date_range = get_state("date_range") if mode == COMPARE_PREVIOUS_PERIOD else None
    if mode == COMPARE_PREVIOUS_PERIOD and not date_range:
        mode = COMPARE_PREVIOUS_MONTH
    return {
        "anchor": get_state("anchor_month"),
        "mode": mode,
        "date_range": date_range,
    }


def available_locations(frames: List[pd.DataFrame], entities: List[str]) -> List[str]:
    """Distinct locations across the given frames, for the filter select box."""
    values = set()
    for df, entity in zip(frames, entities):
        col = LOCATION_COLUMNS.get(entity)
        if df is not None and col in df.columns:
            values.update(v for v in df[col].dropna().astype(str).str.strip() if v)
    return ["All"] + sorted(values)


def apply_location_filter(df: pd.DataFrame, entity: str, location: Optional[str] = None) -> pd.DataFrame:
    """Keep rows for the selected location ("All" keeps everything)."""
    if location is None:
        location = get_state("location")
    col = LOCATION_COLUMNS.get(entity)
    if df is None or not location or location == "All" or col not in df.columns:
        return df
    return df[df[col].astype(str).str.strip() == location]
