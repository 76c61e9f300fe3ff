"""
Clients & Leads

New-client conversion and retention, the lead funnel and membership expirations.
"""
import streamlit as st
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.loader import try_load_dataset
from src.exports import export_metric_cards_csv
from src.metrics.client_conversion import (
    compute_conversion_breakdown, compute_conversion_funnel_by_month, compute_conversion_totals,
    conversion_metric_cards,
)
from src.metrics.expirations import compute_expiration_breakdown, compute_expiration_trend, expiration_metric_cards
from src.metrics.insights import summarise_section
from src.metrics.leads import compute_lead_funnel, compute_lead_trend, conversion_inconsistencies, lead_metric_cards
from src.metrics.member_behavior import analyse_member_behavior, segment_summary
from src.ui.charts import funnel_chart, grouped_bar, horizontal_bar, multi_time_series, share_pie
from src.ui.components import download_button, empty_state, load_or_warn, metric_card_grid, period_caption
from src.ui.formatting import fmt_count, fmt_percent, format_metric_df
from src.ui.layout import render_header, render_sidebar_filters, section_header
from src.ui.state import (
    init_state, get_state, set_state, available_locations, apply_location_filter, comparison_kwargs,
)


st.set_page_config(page_title="Clients & Leads", page_icon="🧲", layout="wide")

init_state()

CLIENT_DIMENSIONS = {
    "first_visit_location": "Location",
    "trainer_name": "Trainer",
    "membership_used": "Membership used",
    "first_visit_type": "Visit type",
}

LEAD_DIMENSIONS = {
    "source": "Source",
    "channel": "Channel",
    "stage": "Stage",
    "center": "Center",
    "associate": "Associate",
}


def render_clients_tab(clients):
    if clients.empty:
        empty_state("No new-client data for the selected filters.")
        return

    cards = conversion_metric_cards(clients, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Clients", cards))
    metric_card_grid(cards, columns=3)

    csv_bytes, csv_name = export_metric_cards_csv(cards, section="clients")
    st.download_button("Download cards (CSV)", csv_bytes, file_name=csv_name, mime="text/csv", key="client_cards_csv")

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        totals = compute_conversion_totals(clients)
        st.plotly_chart(
            funnel_chart(["New", "Converted", "Retained"],
                         [totals["new_clients"], totals["converted"], totals["retained"]],
                         title="Client funnel (all time)"),
            use_container_width=True,
        )
    with col2:
        monthly = compute_conversion_funnel_by_month(clients)
        if not monthly.empty:
            st.plotly_chart(
                grouped_bar(monthly, "month_key", ["new_clients", "converted", "retained"], title="Funnel by month"),
                use_container_width=True,
            )

    dimension = st.selectbox("Break down by", list(CLIENT_DIMENSIONS), format_func=CLIENT_DIMENSIONS.get,
                             key="client_dimension_select")
    breakdown = compute_conversion_breakdown(clients, dimension)
    if not breakdown.empty:
        st.dataframe(format_metric_df(breakdown), hide_index=True, use_container_width=True)
        download_button(breakdown, f"clients_by_{dimension}.csv", key="client_breakdown_csv")


def render_leads_tab(leads):
    if leads.empty:
        empty_state("No lead data for the selected filters.")
        return

    cards = lead_metric_cards(leads, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Leads", cards))
    metric_card_grid(cards, columns=3)

    st.markdown("---")
    trend = compute_lead_trend(leads)
    if not trend.empty:
        st.plotly_chart(multi_time_series(trend, "month_key", ["leads", "converted"], title="Leads by month"),
                        use_container_width=True)

    current = get_state("lead_dimension")
    options = list(LEAD_DIMENSIONS)
    dimension = st.selectbox(
        "Break down by",
        options=options,
        index=options.index(current) if current in options else 0,
        format_func=LEAD_DIMENSIONS.get,
        key="lead_dimension_select",
    )
    set_state("lead_dimension", dimension)

    funnel = compute_lead_funnel(leads, dimension)
    if not funnel.empty:
        st.plotly_chart(horizontal_bar(funnel, "leads", dimension, title="Leads", top_n=15),
                        use_container_width=True)
        st.dataframe(format_metric_df(funnel), hide_index=True, use_container_width=True)

    mismatches = conversion_inconsistencies(leads)
    if not mismatches.empty:
        with st.expander(f"Conversion status mismatches ({len(mismatches):,})"):
            st.caption("Leads whose stage and conversion status disagree.")
            st.dataframe(mismatches, hide_index=True, use_container_width=True)


def render_expirations_tab(expirations):
    if expirations.empty:
        empty_state("No membership expirations for the selected filters.")
        return

    cards = expiration_metric_cards(expirations, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Expirations", cards))
    metric_card_grid(cards, columns=3)

    st.markdown("---")
    trend = compute_expiration_trend(expirations)
    if not trend.empty:
        st.plotly_chart(
            grouped_bar(trend, "month_key", ["active", "churned", "frozen"], title="Expirations by end month",
                        barmode="stack"),
            use_container_width=True,
        )

    section_header("By membership")
    breakdown = compute_expiration_breakdown(expirations)
    if not breakdown.empty:
        st.dataframe(format_metric_df(breakdown), hide_index=True, use_container_width=True)
        download_button(breakdown, "expirations_by_membership.csv", key="expiration_breakdown_csv")


def render_behavior_tab(checkins):
    if checkins.empty:
        empty_state("No check-in data for the selected filters.")
        return

    behavior = analyse_member_behavior(checkins)
    summary = behavior["summary"]
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Members", fmt_count(summary["total_members"]))
    col2.metric("Active", fmt_count(summary["active_members"]))
    col3.metric("At risk", fmt_count(summary["at_risk_members"]))
    col4.metric("Avg show-up", fmt_percent(summary["avg_show_up_rate"]))
    st.info(f"{summary['top_trend']}\n\n{summary['key_insight']}\n\n{summary['recommendation']}")

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        segments = segment_summary(behavior["segments"])
        if not segments.empty:
            st.plotly_chart(share_pie(segments, "segment", "members", title="Members by segment"),
                            use_container_width=True)
    with col2:
        trends = behavior["monthly_trends"]
        if not trends.empty:
            st.plotly_chart(
                multi_time_series(trends.sort_values("month_key"), "month_key", ["bookings", "visits", "cancellations"],
                                  title="Bookings, visits and cancellations"),
                use_container_width=True,
            )

    section_header("Churn risk", "Visits in the latest three months against the three before")
    churn = behavior["churn_risk"]
    if churn.empty:
        st.caption("No members above the churn threshold.")
    else:
        st.dataframe(format_metric_df(churn), hide_index=True, use_container_width=True)
        download_button(churn, "churn_risk_members.csv", key="churn_risk_csv")

    col1, col2 = st.columns(2)
    with col1:
        section_header("Declining members")
        st.dataframe(format_metric_df(behavior["declining"]), hide_index=True, use_container_width=True)
    with col2:
        section_header("Improving members")
        st.dataframe(format_metric_df(behavior["increasing"]), hide_index=True, use_container_width=True)

    section_header("Revenue outlook", "Recent monthly average scaled per month")
    st.dataframe(format_metric_df(behavior["forecast"]), hide_index=True, use_container_width=True)


def main():
    with st.spinner("Loading clients and leads..."):
        raw_clients = load_or_warn(try_load_dataset("new_clients"), key="new_clients")
        raw_leads = load_or_warn(try_load_dataset("leads"), key="leads")
        raw_expirations = load_or_warn(try_load_dataset("expirations"), key="expirations")
        raw_checkins = load_or_warn(try_load_dataset("checkins"), key="checkins")

    locations = available_locations(
        [raw_clients, raw_leads, raw_expirations], ["new_clients", "leads", "expirations"]
    )
    render_sidebar_filters(locations, key_prefix="clients")
    render_header("Clients & Leads")

    clients = apply_location_filter(raw_clients, "new_clients")
    leads = apply_location_filter(raw_leads, "leads")
    expirations = apply_location_filter(raw_expirations, "expirations")
    checkins = apply_location_filter(raw_checkins, "checkins")

    tab_clients, tab_leads, tab_expirations, tab_behavior = st.tabs(
        ["New Clients", "Leads", "Memberships", "Member Behaviour"]
    )
    with tab_clients:
        render_clients_tab(clients)
    with tab_leads:
        render_leads_tab(leads)
    with tab_expirations:
        render_expirations_tab(expirations)
    with tab_behavior:
        render_behavior_tab(checkins)


if __name__ == "__main__":
    main()
