"""
Layout components: header, sidebar filters, section headers.
"""
import streamlit as st
from datetime import date
from typing import List, Optional

from src.metrics.periods import COMPARE_PREVIOUS_MONTH
from src.ui.state import COMPARE_MODE_LABELS, get_filters, get_state, set_state
from src.ui.components import filter_chips


# =============================================================================
# HEADER
# =============================================================================

def render_header(title: str, subtitle: Optional[str] = None):
    """Render page header with title and active filters."""
    st.title(title)
    if subtitle:
        st.caption(subtitle)
    filter_chips(get_filters())


# =============================================================================
# SIDEBAR FILTERS
# =============================================================================

def render_sidebar_filters(locations: Optional[List[str]] = None, key_prefix: str = "filter"):
    """Render sidebar with location and comparison-period filters."""
    st.sidebar.header("Filters")

    if locations:
        current = get_state("location")
        index = locations.index(current) if current in locations else 0
        selected = st.sidebar.selectbox(
            "Location",
            options=locations,
            index=index,
            key=f"{key_prefix}_location",
        )
        set_state("location", selected)

    st.sidebar.divider()

    modes = list(COMPARE_MODE_LABELS)
    current_mode = get_state("compare_mode")
    mode = st.sidebar.radio(
        "Compare",
        options=modes,
        index=modes.index(current_mode) if current_mode in modes else 0,
        format_func=lambda m: COMPARE_MODE_LABELS[m],
        key=f"{key_prefix}_compare_mode",
    )
    set_state("compare_mode", mode)

    if mode == COMPARE_PREVIOUS_MONTH:
        anchor = st.sidebar.date_input(
            "As of",
            value=get_state("anchor_month") or date.today(),
            help="Compares the last completed month before this date with the month before it.",
            key=f"{key_prefix}_anchor",
        )
        set_state("anchor_month", anchor)
    else:
        current_range = get_state("date_range") or (date.today().replace(day=1), date.today())
        picked = st.sidebar.date_input(
            "Date range",
            value=current_range,
            key=f"{key_prefix}_date_range",
        )
        if isinstance(picked, (list, tuple)) and len(picked) == 2:
            set_state("date_range", tuple(picked))


# =============================================================================
# SECTION HEADERS
# =============================================================================

def section_header(title: str, description: Optional[str] = None):
    """Render section header with optional description."""
    st.subheader(title)
    if description:
        st.caption(description)
