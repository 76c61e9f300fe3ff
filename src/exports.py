"""
Export utilities for tables, metric cards and payroll.
"""
import pandas as pd
import json
from typing import Optional, Dict, List
from datetime import datetime
from io import BytesIO

from src.metrics.cards import MetricCard, cards_to_frame


def export_dataframe_csv(df: pd.DataFrame, filename: Optional[str] = None) -> tuple:
    """
    Export dataframe to CSV bytes.

    Returns: (csv_bytes, filename)
    """
    if filename is None:
        filename = format_export_filename("export", "csv")

    csv_bytes = df.to_csv(index=False).encode('utf-8')

    return csv_bytes, filename


def export_dataframe_excel(df: pd.DataFrame, filename: Optional[str] = None,
                           sheet_name: str = "Data") -> tuple:
    """
    Export dataframe to Excel bytes.

    Returns: (excel_bytes, filename)
    """
    if filename is None:
        filename = format_export_filename("export", "xlsx")

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)

    return buffer.getvalue(), filename


def export_metric_cards_csv(cards: List[MetricCard], section: str = "metrics") -> tuple:
    """
    Export metric cards (value, previous, change, YoY) to CSV.

    Returns: (csv_bytes, filename)
    """
    df = cards_to_frame(cards)
    filename = format_export_filename(f"{section.lower().replace(' ', '_')}_cards", "csv")
    return df.to_csv(index=False).encode("utf-8"), filename


def export_report_excel(sheets: Dict[str, pd.DataFrame],
                        filename: Optional[str] = None) -> tuple:
    """
    Export several tables to one workbook, one sheet per entry.

    Empty tables are skipped. Sheet names are cut to Excel's 31 characters.
    """
    if filename is None:
        filename = format_export_filename("studio_report", "xlsx")

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        written = 0
        for name, df in sheets.items():
            if df is None or len(df) == 0:
                continue
            df.to_excel(writer, sheet_name=name[:31], index=False)
            written += 1
        if written == 0:
            pd.DataFrame({"note": ["No data"]}).to_excel(writer, sheet_name="empty", index=False)

    return buffer.getvalue(), filename


def export_payroll_json(payload: dict, filename: Optional[str] = None) -> tuple:
    """
    Export the payroll payload ({"data", "count"} or {"error"}) to JSON.
    """
    if filename is None:
        filename = format_export_filename("payroll", "json")

    return json.dumps(payload, indent=2, default=str).encode("utf-8"), filename


def format_export_filename(base_name: str, extension: str = "csv",
                           include_timestamp: bool = True) -> str:
    """Generate formatted export filename."""
    if include_timestamp:
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        return f"{base_name}_{timestamp}.{extension}"
    return f"{base_name}.{extension}"
