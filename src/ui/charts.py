"""
Standard chart wrappers using Plotly.
"""
import plotly.express as px
import plotly.graph_objects as go
import pandas as pd
from typing import List, Optional


# =============================================================================
# CHART THEME
# =============================================================================

CHART_COLORS = {
    "primary": "#1f77b4",
    "secondary": "#ff7f0e",
    "success": "#28a745",
    "warning": "#ffc107",
    "danger": "#dc3545",
    "neutral": "#6c757d",
    "light": "#f8f9fa",
}

CHART_TEMPLATE = "plotly_white"

DEFAULT_LAYOUT = {
    "template": CHART_TEMPLATE,
    "font": {"family": "Arial, sans-serif", "size": 12},
    "margin": {"l": 50, "r": 30, "t": 40, "b": 50},
    "hoverlabel": {"bgcolor": "white"},
}


def apply_layout(fig: go.Figure, **kwargs) -> go.Figure:
    """Apply standard layout to figure."""
    layout = {**DEFAULT_LAYOUT, **kwargs}
    fig.update_layout(**layout)
    return fig


# =============================================================================
# BAR CHARTS
# =============================================================================

def horizontal_bar(df: pd.DataFrame, x: str, y: str,
                   title: str = "", color: Optional[str] = None,
                   text: Optional[str] = None, top_n: Optional[int] = None) -> go.Figure:
    """
    Create horizontal bar chart, largest bar at the top.
    """
    if top_n:
        df = df.nlargest(top_n, x)

    fig = px.bar(
        df, x=x, y=y, orientation="h",
        title=title,
        color=color,
        text=text,
    )

    fig.update_traces(textposition="outside")
    fig.update_layout(yaxis={"categoryorder": "total ascending"})

    return apply_layout(fig)


def grouped_bar(df: pd.DataFrame, x: str, y: List[str],
                title: str = "", barmode: str = "group") -> go.Figure:
    """
    Create grouped or stacked bar chart.
    """
    fig = go.Figure()

    colors = list(CHART_COLORS.values())

    for i, col in enumerate(y):
        fig.add_trace(go.Bar(
            name=col.replace("_", " ").title(),
            x=df[x],
            y=df[col],
            marker_color=colors[i % len(colors)],
        ))

    fig.update_layout(barmode=barmode, title=title)

    return apply_layout(fig)


def growth_bar(df: pd.DataFrame, x: str, y: str, title: str = "") -> go.Figure:
    """
    Bars coloured by sign, for month-on-month growth.
    """
    values = df[y].fillna(0)
    colors = [CHART_COLORS["success"] if v >= 0 else CHART_COLORS["danger"] for v in values]

    fig = go.Figure(go.Bar(
        x=df[x],
        y=values,
        marker_color=colors,
        text=[f"{v:+.1f}%" for v in values],
        textposition="outside",
    ))
    fig.update_layout(title=title, yaxis_title="Growth %", xaxis_title="")

    return apply_layout(fig)


def funnel_chart(stages: List[str], values: List[float], title: str = "") -> go.Figure:
    """
    Conversion funnel (e.g. new -> converted -> retained).
    """
    fig = go.Figure(go.Funnel(
        y=stages,
        x=values,
        textinfo="value+percent initial",
        marker={"color": [CHART_COLORS["primary"], CHART_COLORS["secondary"], CHART_COLORS["success"]][:len(stages)]},
    ))
    fig.update_layout(title=title)

    return apply_layout(fig)


# =============================================================================
# DISTRIBUTION CHARTS
# =============================================================================

def share_pie(df: pd.DataFrame, names: str, values: str,
              title: str = "", top_n: int = 8) -> go.Figure:
    """
    Donut of shares, with the tail folded into "Other".
    """
    ranked = df.sort_values(values, ascending=False)
    if len(ranked) > top_n:
        head = ranked.head(top_n)
        other = pd.DataFrame({names: ["Other"], values: [ranked[values].iloc[top_n:].sum()]})
        ranked = pd.concat([head[[names, values]], other], ignore_index=True)

    fig = px.pie(ranked, names=names, values=values, title=title, hole=0.45)
    fig.update_traces(textposition="inside", textinfo="percent+label")

    return apply_layout(fig, showlegend=False)


# =============================================================================
# TIME SERIES
# =============================================================================

def time_series(df: pd.DataFrame, x: str, y: str,
                color: Optional[str] = None,
                title: str = "",
                y_title: str = "") -> go.Figure:
    """
    Create time series line chart.
    """
    fig = px.line(
        df, x=x, y=y,
        color=color,
        title=title,
        markers=True,
    )

    fig.update_layout(
        xaxis_title="",
        yaxis_title=y_title or y,
    )

    return apply_layout(fig)


def multi_time_series(df: pd.DataFrame, x: str, y_cols: List[str],
                      title: str = "") -> go.Figure:
    """
    Create time series with multiple metrics.
    """
    fig = go.Figure()

    colors = list(CHART_COLORS.values())

    for i, col in enumerate(y_cols):
        fig.add_trace(go.Scatter(
            x=df[x],
            y=df[col],
            name=col.replace("_", " ").title(),
            mode="lines+markers",
            line={"color": colors[i % len(colors)]},
        ))

    fig.update_layout(title=title, xaxis_title="")

    return apply_layout(fig)


def heatmap(df: pd.DataFrame, index: str, columns: str, values: str,
            title: str = "", aggfunc: str = "sum") -> go.Figure:
    """
    Pivot heatmap (e.g. day of week x time slot attendance).
    """
    pivot = df.pivot_table(index=index, columns=columns, values=values, aggfunc=aggfunc, fill_value=0)

    fig = go.Figure(go.Heatmap(
        z=pivot.values,
        x=[str(c) for c in pivot.columns],
        y=[str(i) for i in pivot.index],
        colorscale="Blues",
    ))
    fig.update_layout(title=title)

    return apply_layout(fig)
