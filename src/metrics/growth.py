"""
Growth-rate calculation shared by every metrics pack.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from src.config import config


@dataclass(frozen=True)
class GrowthResult:
    rate: float
    trend: str
    is_significant: bool
    direction: str

    @property
    def label(self) -> str:
        sign = "+" if self.rate > 0 else ""
        return f"{sign}{self.rate:.1f}%"


def growth_rate(current: float, previous: float) -> float:
    """
    Percent change from previous to current.

    previous == 0 gives 100 when current > 0, else 0.
    """
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def classify_trend(rate: float) -> str:
    magnitude = abs(rate)
    if magnitude > config.strong_trend_threshold:
        return "strong"
    if magnitude > config.moderate_trend_threshold:
        return "moderate"
    return "weak"


def calculate_growth(current: float, previous: float) -> GrowthResult:
    current = float(current or 0)
    previous = float(previous or 0)

    if previous == 0:
        return GrowthResult(
            rate=growth_rate(current, previous),
            trend="moderate" if current > 0 else "weak",
            is_significant=current > 0,
            direction="up" if current > 0 else "flat",
        )

    rate = growth_rate(current, previous)
    if rate > 0:
        direction = "up"
    elif rate < 0:
        direction = "down"
    else:
        direction = "flat"

    return GrowthResult(
        rate=rate,
        trend=classify_trend(rate),
        is_significant=abs(rate) > config.significance_threshold,
        direction=direction,
    )


def safe_divide(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """numerator / denominator * scale, 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator) * scale


def growth_series(values, periods: int = 1) -> np.ndarray:
    """Period-over-period growth for a sequence, NaN for the leading periods."""
    values = np.asarray(values, dtype=float)
    result = np.full(values.shape, np.nan)
    for i in range(periods, len(values)):
        result[i] = growth_rate(values[i], values[i - periods])
    return result


def change_label(rate: Optional[float]) -> str:
    if rate is None or np.isnan(rate):
        return "–"
    sign = "+" if rate > 0 else ""
    return f"{sign}{rate:.1f}%"
