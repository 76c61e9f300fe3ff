"""
Schema validation for entity frames.
"""
import pandas as pd
import streamlit as st
from typing import List, Tuple, Dict

from src.config import REQUIRED_COLUMNS, OPTIONAL_COLUMNS, DATE_COLUMNS
from src.data.records import RECORD_TYPES
from dataclasses import fields


class SchemaValidationError(Exception):
    """Raised when required columns are missing."""
    pass


def validate_required_columns(df: pd.DataFrame, table_name: str) -> Tuple[bool, List[str]]:
    """
    Validate that required columns exist in dataframe.
    Returns (is_valid, missing_columns).
    """
    if table_name not in REQUIRED_COLUMNS:
        return True, []

    missing = [col for col in REQUIRED_COLUMNS[table_name] if col not in df.columns]
    return len(missing) == 0, missing


def check_optional_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """Return the optional columns missing from the frame."""
    return [col for col in OPTIONAL_COLUMNS.get(table_name, []) if col not in df.columns]


def date_coverage(df: pd.DataFrame, table_name: str) -> Dict:
    """
    First and last date of the entity's primary date column, and how many
    rows have no usable date (those rows drop out of every period window).
    """
    date_cols = [col for col in DATE_COLUMNS.get(table_name, []) if col in df.columns]
    if not date_cols or df.empty:
        return {"column": None, "first": None, "last": None, "missing_dates": 0}

    col = date_cols[0]
    dates = pd.to_datetime(df[col], errors="coerce")
    return {
        "column": col,
        "first": dates.min() if dates.notna().any() else None,
        "last": dates.max() if dates.notna().any() else None,
        "missing_dates": int(dates.isna().sum()),
    }


def validate_schema(df: pd.DataFrame, table_name: str, strict: bool = True) -> Dict:
    """
    Full schema validation.

    Args:
        df: DataFrame to validate
        table_name: Entity name for column requirements lookup
        strict: If True, raise error on missing required columns

    Returns:
        Dict with validation results
    """
    is_valid, missing_required = validate_required_columns(df, table_name)
    missing_optional = check_optional_columns(df, table_name)

    result = {
        "is_valid": is_valid,
        "missing_required": missing_required,
        "missing_optional": missing_optional,
        "total_columns": len(df.columns),
        "total_rows": len(df),
        "coverage": date_coverage(df, table_name),
    }

    if strict and not is_valid:
        raise SchemaValidationError(
            f"Missing required columns in {table_name}: {missing_required}"
        )

    return result


def display_validation_result(result: Dict, table_name: str):
    """Display validation result in Streamlit."""
    if result["is_valid"]:
        st.success(f"{table_name}: Schema valid ({result['total_rows']:,} rows, {result['total_columns']} columns)")
    else:
        st.error(f"{table_name}: Missing required columns: {result['missing_required']}")

    if result["missing_optional"]:
        st.warning(f"{table_name}: Missing optional columns (will degrade gracefully): {result['missing_optional']}")

    coverage = result.get("coverage") or {}
    if coverage.get("first") is not None:
        st.caption(
            f"{table_name}: {coverage['column']} from {coverage['first']:%d %b %Y} to {coverage['last']:%d %b %Y}"
            f" · {coverage['missing_dates']:,} rows without a date"
        )


def ensure_column_types(df: pd.DataFrame, table_name: str) -> pd.DataFrame:
    """Coerce numeric, boolean and date columns to the record types."""
    df = df.copy()
    record_type = RECORD_TYPES.get(table_name)

    if record_type is not None:
        for f in fields(record_type):
            if f.name not in df.columns:
                continue
            if f.type in (float, int):
                df[f.name] = pd.to_numeric(df[f.name], errors="coerce").fillna(0)
            elif f.type is bool:
                df[f.name] = df[f.name].astype(str).str.strip().str.upper().eq("TRUE")

    for col in DATE_COLUMNS.get(table_name, []):
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors="coerce")

    return df


def get_column_info(df: pd.DataFrame) -> pd.DataFrame:
    """Get summary info about all columns."""
    info = []
    for col in df.columns:
        info.append({
            "column": col,
            "dtype": str(df[col].dtype),
            "non_null": df[col].notna().sum(),
            "null_pct": f"{df[col].isna().mean()*100:.1f}%",
            "unique": df[col].nunique(),
        })
    return pd.DataFrame(info)
