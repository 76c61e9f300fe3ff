"""
Executive Summary

Headline metrics for every area, last completed month vs the month before.
"""
import streamlit as st
import pandas as pd
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import SUMMARY_ENTITIES
from src.data.loader import try_load_dataset
from src.exports import export_metric_cards_csv, export_report_excel
from src.metrics.cards import cards_to_frame
from src.metrics.executive import executive_cards
from src.metrics.insights import build_highlights, insights_to_frame, summarise_section
from src.metrics.month_on_month import compute_month_on_month
from src.ui.charts import growth_bar, multi_time_series
from src.ui.components import insight_list, load_or_warn, metric_card_grid, period_caption
from src.ui.layout import render_header, render_sidebar_filters, section_header
from src.ui.state import init_state, available_locations, apply_location_filter, comparison_kwargs


st.set_page_config(page_title="Executive Summary", page_icon="📈", layout="wide")

init_state()


def load_frames() -> dict:
    frames = {}
    for entity in SUMMARY_ENTITIES:
        frames[entity] = load_or_warn(try_load_dataset(entity), key=f"exec_{entity}")
    return frames


def main():
    with st.spinner("Loading data..."):
        raw = load_frames()

    locations = available_locations(list(raw.values()), list(raw.keys()))
    render_sidebar_filters(locations, key_prefix="exec")
    render_header("Executive Summary", "Headline metrics across sales, clients, sessions and memberships")

    frames = {entity: apply_location_filter(df, entity) for entity, df in raw.items()}
    sections = executive_cards(frames, **comparison_kwargs())

    if not sections:
        st.info("No data for the selected filters.")
        return

    all_cards = [card for cards in sections.values() for card in cards]
    period_caption(all_cards)

    # =========================================================================
    # HIGHLIGHTS
    # =========================================================================
    section_header("Highlights", "Largest significant movements, unfavourable first")
    highlights = build_highlights(sections)
    insight_list(highlights)

    st.markdown("---")

    # =========================================================================
    # SECTIONS
    # =========================================================================
    for section, cards in sections.items():
        section_header(section, summarise_section(section, cards))
        metric_card_grid(cards, columns=4)
        st.markdown("")

    st.markdown("---")

    # =========================================================================
    # MONTH ON MONTH (unfiltered)
    # =========================================================================
    section_header("Month on Month", "All locations, independent of the filters above")
    summary = compute_month_on_month(raw)
    if summary.empty:
        st.info("No monthly data available.")
    else:
        chronological = summary.sort_values("month_key")
        col1, col2 = st.columns(2)
        with col1:
            st.plotly_chart(
                multi_time_series(chronological, "month_label", ["total_revenue", "total_discounts", "total_payroll"],
                                  title="Revenue, discounts and payroll"),
                use_container_width=True,
            )
        with col2:
            st.plotly_chart(
                growth_bar(chronological, "month_label", "revenue_growth_pct", title="Revenue growth vs prior month"),
                use_container_width=True,
            )

    # =========================================================================
    # EXPORTS
    # =========================================================================
    with st.expander("Export"):
        csv_bytes, csv_name = export_metric_cards_csv(all_cards, section="executive")
        st.download_button("Download cards (CSV)", csv_bytes, file_name=csv_name, mime="text/csv",
                           key="exec_cards_csv")

        sheets = {section: cards_to_frame(cards) for section, cards in sections.items()}
        sheets["Highlights"] = insights_to_frame(highlights)
        sheets["Month on Month"] = summary if not summary.empty else pd.DataFrame()
        xlsx_bytes, xlsx_name = export_report_excel(sheets, filename=None)
        st.download_button(
            "Download report (Excel)", xlsx_bytes, file_name=xlsx_name,
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            key="exec_report_xlsx",
        )


if __name__ == "__main__":
    main()
