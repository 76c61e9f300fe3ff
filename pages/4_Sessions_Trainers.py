"""
Sessions & Trainers

Class attendance and fill, trainer payroll performance and late cancellations.
"""
import streamlit as st
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.fetchers import payroll_payload
from src.data.loader import get_data_status, get_fetchers, try_load_dataset
from src.exports import export_payroll_json
from src.metrics.insights import summarise_section
from src.metrics.late_cancellations import (
    BREAKDOWN_DIMENSIONS, compute_late_cancel_breakdown, late_cancel_metric_cards, top_late_cancellers,
)
from src.metrics.payroll import compute_format_mix, compute_payroll_trend, compute_trainer_summary, payroll_metric_cards
from src.metrics.recurring import (
    compare_trainers_in_slots, compute_slot_performance, recurring_metric_cards, underperforming_slots,
)
from src.metrics.sessions import (
    compute_session_performance, compute_session_trend, rank_sessions, session_metric_cards,
)
from src.ui.charts import grouped_bar, heatmap, horizontal_bar, share_pie, time_series
from src.ui.components import download_button, empty_state, load_or_warn, metric_card_grid, period_caption
from src.ui.formatting import format_metric_df
from src.ui.layout import render_header, render_sidebar_filters, section_header
from src.ui.state import (
    init_state, get_state, set_state, available_locations, apply_location_filter, comparison_kwargs,
)


st.set_page_config(page_title="Sessions & Trainers", page_icon="🚴", layout="wide")

init_state()

SESSION_DIMENSIONS = {
    "cleaned_class": "Class",
    "location": "Location",
    "trainer_name": "Trainer",
    "day_of_week": "Day",
    "time": "Time",
}


def render_sessions_tab(sessions):
    if sessions.empty:
        empty_state("No session data for the selected filters.")
        return

    cards = session_metric_cards(sessions, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Sessions", cards))
    metric_card_grid(cards)

    st.markdown("---")
    trend = compute_session_trend(sessions)
    if not trend.empty:
        st.plotly_chart(time_series(trend, "month_key", "fill_rate", title="Fill rate by month", y_title="%"),
                        use_container_width=True)

    current = get_state("session_dimension")
    options = list(SESSION_DIMENSIONS)
    dimension = st.selectbox(
        "Break down by",
        options=options,
        index=options.index(current) if current in options else 0,
        format_func=SESSION_DIMENSIONS.get,
        key="session_dimension_select",
    )
    set_state("session_dimension", dimension)

    performance = compute_session_performance(sessions, dimension)
    if not performance.empty:
        st.plotly_chart(horizontal_bar(performance, "checkins", dimension, title="Check-ins", top_n=15),
                        use_container_width=True)
        st.dataframe(format_metric_df(performance), hide_index=True, use_container_width=True)
        download_button(performance, f"sessions_by_{dimension}.csv", key="session_performance_csv")

    section_header("Attendance heatmap", "Check-ins by day and time slot")
    st.plotly_chart(heatmap(sessions, "day_of_week", "time", "checked_in_count"), use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        section_header("Top sessions", "By composite score")
        st.dataframe(format_metric_df(_as_percent(rank_sessions(sessions))), hide_index=True,
                     use_container_width=True)
    with col2:
        section_header("Bottom sessions")
        st.dataframe(format_metric_df(_as_percent(rank_sessions(sessions, ascending=True))), hide_index=True,
                     use_container_width=True)


def _as_percent(ranked):
    # session scores carry fill rate as a fraction
    if "fill_rate" in ranked.columns:
        ranked = ranked.assign(fill_rate=ranked["fill_rate"] * 100)
    return ranked


def render_trainers_tab(payroll):
    if payroll.empty:
        empty_state("No payroll data for the selected filters.")
        return

    cards = payroll_metric_cards(payroll, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Trainers", cards))
    metric_card_grid(cards)

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        trend = compute_payroll_trend(payroll)
        if not trend.empty:
            st.plotly_chart(time_series(trend, "month_key", "paid", title="Trainer revenue by month", y_title="₹"),
                            use_container_width=True)
    with col2:
        mix = compute_format_mix(payroll)
        if not mix.empty:
            st.plotly_chart(share_pie(mix, "format", "revenue", title="Revenue by format"),
                            use_container_width=True)

    section_header("Trainer summary")
    summary = compute_trainer_summary(payroll)
    st.dataframe(format_metric_df(summary), hide_index=True, use_container_width=True)
    download_button(summary, "trainer_summary.csv", key="trainer_summary_csv")

    if get_data_status()["mode"] == "live":
        payload = payroll_payload(get_fetchers()["payroll"])
        json_bytes, json_name = export_payroll_json(payload)
        st.download_button("Download payroll (JSON)", json_bytes, file_name=json_name, mime="application/json",
                           key="payroll_json")


def render_late_cancels_tab(checkins):
    if checkins.empty:
        empty_state("No check-in data for the selected filters.")
        return

    cards = late_cancel_metric_cards(checkins, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Late Cancellations", cards))
    metric_card_grid(cards)

    st.markdown("---")
    dimension = st.selectbox("Break down by", list(BREAKDOWN_DIMENSIONS), format_func=str.title,
                             key="late_cancel_dimension_select")
    breakdown = compute_late_cancel_breakdown(checkins, dimension)
    if breakdown.empty:
        empty_state("No late cancellations for this breakdown.")
    else:
        column = BREAKDOWN_DIMENSIONS[dimension]
        st.plotly_chart(
            grouped_bar(breakdown.head(15), column, ["late_cancellations", "members"], title="Late cancellations"),
            use_container_width=True,
        )
        st.dataframe(format_metric_df(breakdown), hide_index=True, use_container_width=True)

    section_header("Most frequent late cancellers")
    st.dataframe(top_late_cancellers(checkins), hide_index=True, use_container_width=True)


def render_recurring_tab(recurring, teacher_recurring):
    if recurring.empty:
        empty_state("No recurring session data for the selected filters.")
        return

    cards = recurring_metric_cards(recurring, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Recurring Slots", cards))
    metric_card_grid(cards)

    st.markdown("---")
    section_header("Slot performance", "Class, location, day and time; best class average first")
    min_sessions = st.number_input("Minimum sessions per slot", min_value=1, value=3, step=1,
                                   key="recurring_min_sessions")
    slots = compute_slot_performance(recurring, min_sessions=int(min_sessions))
    if slots.empty:
        empty_state("No slot has that many sessions.")
    else:
        st.dataframe(format_metric_df(slots), hide_index=True, use_container_width=True)
        download_button(slots, "recurring_slots.csv", key="recurring_slots_csv")

    section_header("Underperforming slots")
    threshold = st.slider("Fill rate below (%)", min_value=10, max_value=90, value=50, step=5,
                          key="recurring_fill_threshold")
    low = underperforming_slots(recurring, fill_threshold=float(threshold), min_sessions=int(min_sessions))
    if low.empty:
        st.caption("No slots below the threshold.")
    else:
        st.dataframe(format_metric_df(low), hide_index=True, use_container_width=True)

    comparison = compare_trainers_in_slots(teacher_recurring)
    if not comparison.empty:
        section_header("Trainers within slots", "Class average against the slot's overall average")
        st.dataframe(format_metric_df(comparison), hide_index=True, use_container_width=True)


def main():
    with st.spinner("Loading sessions and payroll..."):
        raw_sessions = load_or_warn(try_load_dataset("sessions"), key="sessions")
        raw_payroll = load_or_warn(try_load_dataset("payroll"), key="payroll")
        raw_checkins = load_or_warn(try_load_dataset("checkins"), key="checkins")
        raw_recurring = load_or_warn(try_load_dataset("recurring"), key="recurring")
        raw_teacher_recurring = load_or_warn(try_load_dataset("teacher_recurring"), key="teacher_recurring")

    locations = available_locations(
        [raw_sessions, raw_payroll, raw_checkins], ["sessions", "payroll", "checkins"]
    )
    render_sidebar_filters(locations, key_prefix="sessions")
    render_header("Sessions & Trainers")

    sessions = apply_location_filter(raw_sessions, "sessions")
    payroll = apply_location_filter(raw_payroll, "payroll")
    checkins = apply_location_filter(raw_checkins, "checkins")
    recurring = apply_location_filter(raw_recurring, "recurring")
    teacher_recurring = apply_location_filter(raw_teacher_recurring, "teacher_recurring")

    tab_sessions, tab_recurring, tab_trainers, tab_late = st.tabs(
        ["Sessions", "Recurring Slots", "Trainers", "Late Cancellations"]
    )
    with tab_sessions:
        render_sessions_tab(sessions)
    with tab_recurring:
        render_recurring_tab(recurring, teacher_recurring)
    with tab_trainers:
        render_trainers_tab(payroll)
    with tab_late:
        render_late_cancels_tab(checkins)


if __name__ == "__main__":
    main()
