"""
Rule-based highlights and section summaries built from metric cards.
"""
import pandas as pd
from dataclasses import dataclass
from typing import Dict, List

from src.metrics.cards import MetricCard

SEVERITY_GOOD = "good"
SEVERITY_WATCH = "watch"
SEVERITY_BAD = "bad"
SEVERITY_NEUTRAL = "neutral"

INSIGHT_COLUMNS = ["section", "metric", "severity", "headline", "detail"]


@dataclass(frozen=True)
class Insight:
    section: str
    metric: str
    severity: str
    headline: str
    detail: str


def _is_favourable(card: MetricCard) -> bool:
    rising = card.growth.rate > 0
    return rising != card.invert


def _severity(card: MetricCard) -> str:
    growth = card.growth
    if not growth.is_significant:
        return SEVERITY_NEUTRAL
    if _is_favourable(card):
        return SEVERITY_GOOD
    return SEVERITY_BAD if growth.trend == "strong" else SEVERITY_WATCH


def _movement_word(card: MetricCard) -> str:
    if card.growth.direction == "up":
        return "up"
    if card.growth.direction == "down":
        return "down"
    return "flat"


def card_insight(section: str, card: MetricCard) -> Insight:
    """One sentence for a card: level, movement and YoY context."""
    growth = card.growth
    headline = f"{card.title} {_movement_word(card)} {abs(growth.rate):.1f}% to {card.formatted}"

    detail = f"{card.period_label}: {card.previous_formatted} -> {card.formatted} ({growth.trend} trend)."
    if card.yoy_growth is not None and card.year_ago_value:
        detail += f" Year on year {card.yoy_growth.label}."

    return Insight(section, card.title, _severity(card), headline, detail)


def build_highlights(cards_by_section: Dict[str, List[MetricCard]], limit: int = 5) -> List[Insight]:
    """
    Largest significant movements across sections.

    Ordered by unfavourable first, then by size of the change.
    """
    candidates = []
    for section, cards in cards_by_section.items():
        for card in cards:
            if card.growth.is_significant:
                candidates.append((section, card))

    candidates.sort(key=lambda item: (_is_favourable(item[1]), -abs(item[1].growth.rate)))
    return [card_insight(section, card) for section, card in candidates[:limit]]


def summarise_section(section: str, cards: List[MetricCard]) -> str:
    """
    Short plain-language summary of a section.

    Names the lead metric, then the best and worst significant movers.
    """
    if not cards:
        return f"No {section.lower()} data for this period."

    lead = cards[0]
    parts = [
        f"{lead.title} was {lead.formatted} for {lead.period_label.split(' vs ')[0]}, "
        f"{lead.growth.label} vs {lead.previous_formatted}."
    ]

    movers = [c for c in cards[1:] if c.growth.is_significant]
    improving = [c for c in movers if _is_favourable(c)]
    slipping = [c for c in movers if not _is_favourable(c)]

    if improving:
        best = max(improving, key=lambda c: abs(c.growth.rate))
        parts.append(f"Best mover: {best.title} ({best.growth.label}).")
    if slipping:
        worst = max(slipping, key=lambda c: abs(c.growth.rate))
        parts.append(f"Needs attention: {worst.title} ({worst.growth.label}).")
    if not movers:
        parts.append("Other metrics were broadly stable.")

    return " ".join(parts)


def insights_to_frame(insights: List[Insight]) -> pd.DataFrame:
    return pd.DataFrame([i.__dict__ for i in insights], columns=INSIGHT_COLUMNS)
