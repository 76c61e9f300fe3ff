"""
Executive summary: the headline cards of every pack for one comparison window.
"""
import pandas as pd
from typing import Dict, List, Optional, Tuple

from src.metrics.cards import MetricCard
from src.metrics.client_conversion import conversion_metric_cards
from src.metrics.discounts import discount_metric_cards
from src.metrics.expirations import expiration_metric_cards
from src.metrics.late_cancellations import late_cancel_metric_cards
from src.metrics.leads import lead_metric_cards
from src.metrics.payroll import payroll_metric_cards
from src.metrics.periods import COMPARE_PREVIOUS_MONTH
from src.metrics.sales import sales_metric_cards
from src.metrics.sessions import session_metric_cards

# section -> (entity frame, card builder, cards shown on the summary)
EXECUTIVE_SECTIONS = {
    "Sales": ("sales", sales_metric_cards, ["Sales Revenue", "Transactions", "Unique Members", "Avg Transaction Value"]),
    "Discounts": ("sales", discount_metric_cards, ["Total Discounts", "Discount Rate"]),
    "Clients": ("new_clients", conversion_metric_cards, ["New Members", "Conversion Rate", "Retention Rate", "Average LTV"]),
    "Leads": ("leads", lead_metric_cards, ["Total Leads", "Lead Conversion Rate"]),
    "Sessions": ("sessions", session_metric_cards, ["Total Sessions", "Total Check-ins", "Fill Rate", "Class Avg (Non-empty)"]),
    "Trainers": ("payroll", payroll_metric_cards, ["Trainer Revenue", "Class Average"]),
    "Late Cancellations": ("checkins", late_cancel_metric_cards, ["Late Cancellations", "Late Cancel Rate"]),
    "Expirations": ("expirations", expiration_metric_cards, ["Churned Members", "Churned Revenue Impact"]),
}


def executive_cards(
    frames: Dict[str, pd.DataFrame],
    anchor=None,
    mode: str = COMPARE_PREVIOUS_MONTH,
    date_range: Optional[Tuple] = None,
    headline_only: bool = True,
) -> Dict[str, List[MetricCard]]:
    """Cards per section; sections whose frame is missing or empty are omitted."""
    result = {}
    for section, (entity, builder, headline) in EXECUTIVE_SECTIONS.items():
        df = frames.get(entity)
        if df is None or df.empty:
            continue
        cards = builder(df, anchor=anchor, mode=mode, date_range=date_range)
        if headline_only:
            cards = [c for c in cards if c.title in headline]
        if cards:
            result[section] = cards
    return result
