"""
Sales & Discounts

Revenue, transactions and member spend, plus discount depth and penetration.
"""
import streamlit as st
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.loader import try_load_dataset
from src.exports import export_dataframe_csv, export_dataframe_excel, export_metric_cards_csv
from src.metrics.discounts import compute_discount_breakdown, discount_distribution, discount_metric_cards
from src.metrics.insights import summarise_section
from src.metrics.outliers import analyse_month, detect_outlier_months, top_spenders
from src.metrics.sales import compute_sales_breakdown, compute_sales_trend, sales_metric_cards, sales_month_on_month
from src.ui.charts import grouped_bar, horizontal_bar, share_pie, time_series
from src.ui.components import download_button, empty_state, load_or_warn, metric_card_grid, period_caption
from src.ui.formatting import fmt_currency, fmt_decimal, format_metric_df
from src.ui.layout import render_header, render_sidebar_filters, section_header
from src.ui.state import (
    init_state, get_state, set_state, available_locations, apply_location_filter, comparison_kwargs,
)


st.set_page_config(page_title="Sales & Discounts", page_icon="💰", layout="wide")

init_state()

SALES_DIMENSIONS = {
    "cleaned_category": "Category",
    "cleaned_product": "Product",
    "calculated_location": "Location",
    "sold_by": "Sold by",
    "payment_method": "Payment method",
    "membership_type": "Membership type",
}


def render_sales_tab(sales):
    cards = sales_metric_cards(sales, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Sales", cards))
    metric_card_grid(cards)

    csv_bytes, csv_name = export_metric_cards_csv(cards, section="sales")
    st.download_button("Download cards (CSV)", csv_bytes, file_name=csv_name, mime="text/csv", key="sales_cards_csv")

    st.markdown("---")
    section_header("Monthly trend")
    trend = compute_sales_trend(sales)
    if not trend.empty:
        st.plotly_chart(time_series(trend, "month_key", "net_revenue", title="Net revenue", y_title="₹"),
                        use_container_width=True)

    st.markdown("---")
    current = get_state("sales_dimension")
    options = list(SALES_DIMENSIONS)
    dimension = st.selectbox(
        "Break down by",
        options=options,
        index=options.index(current) if current in options else 0,
        format_func=SALES_DIMENSIONS.get,
        key="sales_dimension_select",
    )
    set_state("sales_dimension", dimension)

    breakdown = compute_sales_breakdown(sales, dimension)
    if breakdown.empty:
        empty_state("No sales for this breakdown.")
        return

    col1, col2 = st.columns([3, 2])
    with col1:
        st.plotly_chart(horizontal_bar(breakdown, "net_revenue", dimension, title="Net revenue", top_n=15),
                        use_container_width=True)
    with col2:
        st.plotly_chart(share_pie(breakdown, dimension, "net_revenue", title="Revenue share"),
                        use_container_width=True)

    st.dataframe(format_metric_df(breakdown), hide_index=True, use_container_width=True)
    download_button(breakdown, f"sales_by_{dimension}.csv", key="sales_breakdown_csv")

    section_header("Month on month", f"Net revenue by {SALES_DIMENSIONS[dimension].lower()}, last 12 months")
    pivot = sales_month_on_month(sales, dimension, months=12)
    if not pivot.empty:
        st.dataframe(pivot.round(0), use_container_width=True)
        xlsx_bytes, xlsx_name = export_dataframe_excel(pivot.reset_index(), sheet_name="Month on Month")
        st.download_button(
            "Download (Excel)", xlsx_bytes, file_name=xlsx_name,
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            key="sales_mom_xlsx",
        )


def render_discounts_tab(sales, discounts):
    cards = discount_metric_cards(sales, **comparison_kwargs())
    period_caption(cards)
    st.caption(summarise_section("Discounts", cards))
    metric_card_grid(cards)

    st.markdown("---")
    dimension = st.selectbox(
        "Break down by",
        options=list(SALES_DIMENSIONS),
        format_func=SALES_DIMENSIONS.get,
        key="discount_dimension_select",
    )
    breakdown = compute_discount_breakdown(sales, dimension)
    if breakdown.empty:
        empty_state("No discounts for this breakdown.")
    else:
        st.plotly_chart(horizontal_bar(breakdown, "total_discount", dimension, title="Discount value", top_n=15),
                        use_container_width=True)
        st.dataframe(format_metric_df(breakdown), hide_index=True, use_container_width=True)

    section_header("Discount depth")
    bands = discount_distribution(sales)
    if not bands.empty:
        st.plotly_chart(grouped_bar(bands, "band", ["transactions"], title="Discounted transactions by depth"),
                        use_container_width=True)

    with st.expander(f"Discounted transactions ({len(discounts):,})"):
        cols = [
            "payment_date", "customer_name", "cleaned_product", "calculated_location",
            "mrp_post_tax", "payment_value", "discount_amount", "discount_percentage",
        ]
        table = discounts[[c for c in cols if c in discounts.columns]]
        st.dataframe(format_metric_df(table), hide_index=True, use_container_width=True)
        csv_bytes, csv_name = export_dataframe_csv(table, filename="discounted_transactions.csv")
        st.download_button("Download CSV", csv_bytes, file_name=csv_name, mime="text/csv", key="discount_rows_csv")


def render_month_tab(raw_sales, checkins):
    outliers = detect_outlier_months(raw_sales)
    if outliers.empty:
        empty_state("No succeeded sales to analyse.")
        return

    flagged = outliers[outliers["is_outlier"]]
    if not flagged.empty:
        st.caption("Months that stand out: " + ", ".join(m.strftime("%b %Y") for m in flagged["month_key"]))

    months = list(outliers["month_key"].sort_values(ascending=False))
    default = months.index(flagged["month_key"].max()) if not flagged.empty else 0
    month = st.selectbox("Month", months, index=default, format_func=lambda m: m.strftime("%b %Y"),
                         key="deep_dive_month")
    location = get_state("location")
    result = analyse_month(raw_sales, month, checkins=checkins,
                           location=None if not location or location == "All" else location)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Revenue", fmt_currency(result["total_revenue"]))
    col2.metric("New-client revenue", fmt_currency(result["new_client_revenue"]))
    col3.metric("Revenue on running memberships", fmt_currency(result["stacked_revenue"]))
    col4.metric("Visits per ₹1K", fmt_decimal(result["visits_per_1000_revenue"]))
    st.caption(
        f"{result['new_clients']} new and {result['existing_clients']} existing clients; "
        f"{result['renewals']} renewals, {result['upgrades']} upgrades, {result['downgrades']} downgrades."
    )

    st.markdown("---")
    st.dataframe(format_metric_df(result["customer_split"]), hide_index=True, use_container_width=True)
    daily = result["daily"]
    if not daily.empty:
        st.plotly_chart(
            grouped_bar(daily, "date", ["new_client_revenue", "existing_client_revenue"], title="Revenue by day",
                        barmode="stack"),
            use_container_width=True,
        )

    col1, col2 = st.columns(2)
    with col1:
        section_header("Memberships sold")
        st.dataframe(format_metric_df(result["memberships"]), hide_index=True, use_container_width=True)
    with col2:
        section_header("Multiple memberships", "Customers who bought more than one membership")
        st.dataframe(format_metric_df(result["stacked_members"]), hide_index=True, use_container_width=True)

    section_header("Top spenders")
    spenders = result["spenders"]
    st.dataframe(format_metric_df(top_spenders(spenders)), hide_index=True, use_container_width=True)
    download_button(spenders, f"spenders_{month.strftime('%Y_%m')}.csv", key="spenders_csv")

    section_header("Lapsed members", "Ended memberships, highest lifetime value first")
    st.dataframe(format_metric_df(result["lapsed_members"]), hide_index=True, use_container_width=True)


def main():
    with st.spinner("Loading sales..."):
        raw_sales = load_or_warn(try_load_dataset("sales"), key="sales")
        raw_discounts = load_or_warn(try_load_dataset("discounts"), key="discounts")
        raw_checkins = load_or_warn(try_load_dataset("checkins"), key="checkins")

    render_sidebar_filters(available_locations([raw_sales], ["sales"]), key_prefix="sales")
    render_header("Sales & Discounts")

    sales = apply_location_filter(raw_sales, "sales")
    discounts = apply_location_filter(raw_discounts, "discounts")

    if sales.empty:
        empty_state("No sales data for the selected filters.")
        return

    tab_sales, tab_discounts, tab_month = st.tabs(["Sales", "Discounts", "Month Deep Dive"])
    with tab_sales:
        render_sales_tab(sales)
    with tab_discounts:
        render_discounts_tab(sales, discounts)
    with tab_month:
        render_month_tab(raw_sales, raw_checkins)


if __name__ == "__main__":
    main()
