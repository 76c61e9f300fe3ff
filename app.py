"""
Studio Performance Analytics

Main entry point for Streamlit app.
"""
import streamlit as st
from pathlib import Path
from datetime import datetime, timezone

# Page config must be first Streamlit command
st.set_page_config(
    page_title="Studio Performance Analytics",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent))

from src.config import config, configure_logging, SUMMARY_ENTITIES
from src.data.loader import get_data_status, try_load_dataset
from src.data.schema import validate_schema, display_validation_result
from src.metrics.month_on_month import compute_month_on_month
from src.ui.components import error_with_retry, render_data_status_panel
from src.ui.formatting import format_metric_df, style_growth
from src.ui.state import init_state


def main():
    """Main app entry point."""
    configure_logging()

    # Initialize session state
    init_state()

    # Header
    st.title("Studio Performance Analytics")
    st.caption("Sales · Clients · Leads · Sessions · Trainers · Memberships")

    status = get_data_status()

    has_snapshots = any(entity["snapshot_exists"] for entity in status["entities"].values())
    if status["missing_settings"] and not has_snapshots:
        st.error("Google Sheets is not configured.")
        st.markdown(f"""
        ### Setup Required

        Set these environment variables (or add them to `.env`):
        {", ".join(f"`{name}`" for name in status["missing_settings"])}

        plus the spreadsheet IDs (`GOOGLE_SHEETS_SPREADSHEET_ID` or the per-sheet
        `SALES_SPREADSHEET_ID`, `SESSIONS_SPREADSHEET_ID`, ...).

        To work offline, run `python scripts/fetch_snapshots.py` on a configured
        machine, copy `{config.snapshots_dir}` here and set `USE_SNAPSHOTS=true`.
        """)
        return

    # Navigation
    col1, col2 = st.columns([1, 4])

    with col1:
        st.markdown("### Quick Links")
        st.page_link("pages/1_Executive_Summary.py", label="Executive Summary", icon="📈")
        st.page_link("pages/2_Sales_Discounts.py", label="Sales & Discounts", icon="💰")
        st.page_link("pages/3_Clients_Leads.py", label="Clients & Leads", icon="🧲")
        st.page_link("pages/4_Sessions_Trainers.py", label="Sessions & Trainers", icon="🚴")

    with col2:
        st.markdown("### Month on Month")
        st.caption(f"Last {config.month_on_month_window} months, all locations")

        frames = {}
        with st.spinner("Loading data..."):
            for entity in SUMMARY_ENTITIES:
                result = try_load_dataset(entity)
                if result["error"]:
                    error_with_retry(result["error"], key=f"retry_home_{entity}")
                frames[entity] = result["data"]

        summary = compute_month_on_month(frames)
        if summary.empty:
            st.info("No monthly data available yet.")
        else:
            display = summary.drop(columns=["month_key", "year", "month"])
            formatted = format_metric_df(display.drop(columns=["revenue_growth_pct"]))
            formatted["revenue_growth_pct"] = display["revenue_growth_pct"].round(1)
            st.dataframe(
                style_growth(formatted, ["revenue_growth_pct"]),
                hide_index=True,
                use_container_width=True,
            )

    # Data status
    st.markdown("---")
    render_data_status_panel(status)

    with st.expander("Schema Checks"):
        for entity, df in frames.items():
            if df.empty:
                st.caption(f"{entity}: no rows")
                continue
            display_validation_result(validate_schema(df, entity, strict=False), entity)

    snapshots = sorted(config.snapshots_dir.glob("*.csv")) if config.snapshots_dir.exists() else []
    if snapshots:
        with st.expander("Snapshot fingerprint", expanded=False):
            rows = []
            for path in snapshots:
                mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                rows.append({
                    "file": path.name,
                    "size_mb": round(path.stat().st_size / (1024 * 1024), 2),
                    "modified_utc": mtime.strftime("%Y-%m-%d %H:%M"),
                })
            st.dataframe(rows, use_container_width=True)


if __name__ == "__main__":
    main()
