"""
Metric cards: one headline number with its period comparisons.
"""
from dataclasses import dataclass, asdict
from typing import Callable, List, Optional, Tuple

import pandas as pd

from src.metrics.growth import GrowthResult, calculate_growth
from src.metrics.periods import COMPARE_PREVIOUS_MONTH, ComparisonWindows, comparison_windows, filter_window
from src.ui.formatting import format_value


@dataclass
class MetricCard:
    title: str
    value: float
    formatted: str
    previous_value: float
    previous_formatted: str
    growth: GrowthResult
    period_label: str
    year_ago_value: Optional[float] = None
    yoy_growth: Optional[GrowthResult] = None
    description: str = ""
    kind: str = "count"
    invert: bool = False

    @property
    def change(self) -> float:
        return self.growth.rate

    def to_row(self) -> dict:
        row = asdict(self)
        growth = row.pop("growth")
        yoy = row.pop("yoy_growth")
        row["change"] = growth["rate"]
        row["trend"] = growth["trend"]
        row["is_significant"] = growth["is_significant"]
        row["yoy_change"] = yoy["rate"] if yoy else None
        return row


def make_card(
    title: str,
    current: float,
    previous: float,
    windows: ComparisonWindows,
    kind: str = "count",
    year_ago: Optional[float] = None,
    description: str = "",
    invert: bool = False,
) -> MetricCard:
    current = float(current or 0)
    previous = float(previous or 0)
    return MetricCard(
        title=title,
        value=current,
        formatted=format_value(current, kind),
        previous_value=previous,
        previous_formatted=format_value(previous, kind),
        growth=calculate_growth(current, previous),
        period_label=windows.label,
        year_ago_value=None if year_ago is None else float(year_ago),
        yoy_growth=None if year_ago is None else calculate_growth(current, year_ago),
        description=description,
        kind=kind,
        invert=invert,
    )


@dataclass(frozen=True)
class CardSpec:
    """How to compute one card from a windowed frame."""
    title: str
    compute: Callable[[pd.DataFrame], float]
    kind: str = "count"
    description: str = ""
    invert: bool = False
    with_yoy: bool = True


def build_cards(
    specs: List[CardSpec],
    current_df: pd.DataFrame,
    previous_df: pd.DataFrame,
    windows: ComparisonWindows,
    year_ago_df: Optional[pd.DataFrame] = None,
) -> List[MetricCard]:
    """Evaluate each spec over the current, previous and year-ago frames."""
    cards = []
    for spec in specs:
        year_ago = None
        if spec.with_yoy and year_ago_df is not None:
            year_ago = spec.compute(year_ago_df)
        cards.append(make_card(
            spec.title,
            spec.compute(current_df),
            spec.compute(previous_df),
            windows,
            kind=spec.kind,
            year_ago=year_ago,
            description=spec.description,
            invert=spec.invert,
        ))
    return cards


def cards_to_frame(cards: List[MetricCard]) -> pd.DataFrame:
    """Tabular view of cards (used for export)."""
    return pd.DataFrame([card.to_row() for card in cards])


def find_card(cards: List[MetricCard], title: str) -> Optional[MetricCard]:
    for card in cards:
        if card.title == title:
            return card
    return None


def windowed_cards(
    df: pd.DataFrame,
    specs: List[CardSpec],
    date_col: str,
    anchor=None,
    mode: str = COMPARE_PREVIOUS_MONTH,
    date_range: Optional[Tuple] = None,
) -> List[MetricCard]:
    """Split `df` into comparison windows on `date_col` and build cards."""
    windows = comparison_windows(anchor, mode=mode, date_range=date_range)
    return build_cards(
        specs,
        filter_window(df, date_col, windows.current),
        filter_window(df, date_col, windows.previous),
        windows,
        year_ago_df=filter_window(df, date_col, windows.year_ago),
    )
