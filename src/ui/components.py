"""
Reusable UI components and blocks.
"""
import streamlit as st
import pandas as pd
from typing import Optional, List, Dict, Any

from src.metrics.cards import MetricCard
from src.metrics.insights import Insight, SEVERITY_BAD, SEVERITY_GOOD, SEVERITY_WATCH
from src.ui.formatting import delta_color, trend_badge


def metric_card(card: MetricCard, show_yoy: bool = True):
    """
    Render one metric card: value, change vs the previous window, and context.
    """
    st.metric(
        label=card.title,
        value=card.formatted,
        delta=card.growth.label,
        delta_color=delta_color(card.change, card.invert),
        help=card.description or None,
    )

    caption = f"{card.previous_formatted} in {card.period_label.split(' vs ')[-1]}"
    if show_yoy and card.yoy_growth is not None and card.year_ago_value is not None:
        caption += f" · YoY {card.yoy_growth.label}"
    st.caption(caption)
    st.markdown(trend_badge(card.growth.trend), unsafe_allow_html=True)


def metric_card_grid(cards: List[MetricCard], columns: int = 4, show_yoy: bool = True):
    """
    Render metric cards in rows of `columns`.
    """
    if not cards:
        empty_state("No metrics for this period.")
        return

    for start in range(0, len(cards), columns):
        row = cards[start:start + columns]
        cols = st.columns(columns)
        for col, card in zip(cols, row):
            with col:
                metric_card(card, show_yoy=show_yoy)


def period_caption(cards: List[MetricCard]):
    """Caption with the comparison label of the first card."""
    if cards:
        st.caption(f"Comparing {cards[0].period_label}")


def error_with_retry(message: str, key: str = "retry"):
    """
    Show a load error with a Retry button.

    Retry clears cached data and reruns the page.
    """
    from src.data.loader import clear_data_cache

    st.error(message)
    if st.button("Retry", key=key):
        clear_data_cache()
        st.rerun()


def load_or_warn(result: Dict[str, Any], key: str) -> pd.DataFrame:
    """Unwrap a try_load_dataset result, showing error_with_retry on failure."""
    if result.get("error"):
        error_with_retry(result["error"], key=f"retry_{key}")
    return result["data"]


def insight_list(insights: List[Insight]):
    """
    Render highlights as coloured callouts.
    """
    if not insights:
        st.caption("No significant movements this period.")
        return

    for insight in insights:
        text = f"**{insight.section}: {insight.headline}**  \n{insight.detail}"
        if insight.severity == SEVERITY_GOOD:
            st.success(text)
        elif insight.severity == SEVERITY_BAD:
            st.error(text)
        elif insight.severity == SEVERITY_WATCH:
            st.warning(text)
        else:
            st.info(text)


def empty_state(message: str,
                icon: str = "📭",
                action_label: Optional[str] = None,
                on_action: Optional[callable] = None,
                key: str = "empty_state"):
    """
    Render empty state with optional action.
    """
    col1, col2, col3 = st.columns([1, 2, 1])

    with col2:
        st.markdown(f"### {icon}")
        st.markdown(f"**{message}**")

        if action_label and on_action:
            st.button(action_label, on_click=on_action, key=key)


def filter_chips(filters: Dict[str, Any]):
    """
    Display active filters as chips.
    """
    active = []

    for key, value in filters.items():
        if value is None or value == "" or value == "All":
            continue
        if isinstance(value, (list, tuple)):
            value = " to ".join(str(v) for v in value)
        active.append(f"{key.replace('_', ' ')}: {value}")

    if active:
        chips = " | ".join([f"`{f}`" for f in active])
        st.caption(f"Active filters: {chips}")


def download_button(df: pd.DataFrame,
                    filename: str,
                    label: str = "Download CSV",
                    key: str = "download"):
    """
    Render download button for dataframe.
    """
    csv = df.to_csv(index=False)
    st.download_button(
        label=label,
        data=csv,
        file_name=filename,
        mime="text/csv",
        key=key
    )


def render_data_status_panel(status: Dict[str, Any]):
    """
    Render data source availability per entity.
    """
    with st.expander("Data Sources", expanded=False):
        st.markdown(f"- **Mode**: {status['mode']}")
        if status["missing_settings"]:
            st.warning("Missing settings: " + ", ".join(status["missing_settings"]))
        rows = [
            {"entity": entity, **info}
            for entity, info in status["entities"].items()
        ]
        st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
