"""
Tests for recurring class slot metrics.
"""
import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.metrics.cards import find_card
from src.metrics.recurring import (
    compare_trainers_in_slots,
    compute_slot_performance,
    count_slots,
    recurring_metric_cards,
    underperforming_slots,
)


@pytest.fixture
def recurring_df():
    checked_in = [10.0, 12.0, 8.0, 2.0, 0.0, 4.0, 9.0]
    capacity = [20.0, 20.0, 20.0, 10.0, 10.0, 10.0, 10.0]
    return pd.DataFrame({
        "date": pd.to_datetime([
            "2025-08-04", "2025-08-11", "2025-08-18",
            "2025-08-05", "2025-08-12", "2025-08-19",
            "2025-08-06",
        ]),
        "cleaned_class": ["PowerCycle"] * 3 + ["Barre"] * 3 + ["Mat"],
        "location": ["Kwality House"] * 6 + ["Supreme HQ"],
        "day_of_week": ["Monday"] * 3 + ["Tuesday"] * 3 + ["Wednesday"],
        "time": ["07:30"] * 3 + ["18:00"] * 3 + ["09:00"],
        "trainer_name": ["Anu K", "Anu K", "Rohan M", "Rohan M", "Rohan M", "Rohan M", "Anu K"],
        "capacity": capacity,
        "checked_in_count": checked_in,
        "booked_count": checked_in,
        "late_cancelled_count": [0.0] * 7,
        "revenue": [c * 500 for c in checked_in],
        "fill_percentage": [c / cap * 100 for c, cap in zip(checked_in, capacity)],
    })


class TestSlotPerformance:
    """Per-slot totals."""

    def test_sorted_by_class_average(self, recurring_df):
        slots = compute_slot_performance(recurring_df)

        assert list(slots["cleaned_class"]) == ["PowerCycle", "Mat", "Barre"]
        top = slots.iloc[0]
        assert top["sessions"] == 3
        assert top["class_average_incl_empty"] == 10.0
        assert top["fill_rate"] == 50.0
        assert top["revenue"] == 15000.0
        assert top["trainers"] == 2
        assert top["fill_rate_std"] == pytest.approx(8.165, abs=1e-3)

    def test_empty_sessions_counted(self, recurring_df):
        barre = compute_slot_performance(recurring_df).set_index("cleaned_class").loc["Barre"]
        assert barre["empty_sessions"] == 1
        assert barre["class_average_excl_empty"] == 3.0

    def test_blank_keys_grouped_as_unknown(self, recurring_df):
        recurring_df.loc[6, "time"] = ""
        slots = compute_slot_performance(recurring_df)
        assert "Unknown" in set(slots["time"])

    def test_min_sessions(self, recurring_df):
        slots = compute_slot_performance(recurring_df, min_sessions=2)
        assert "Mat" not in set(slots["cleaned_class"])

    def test_empty_frame(self):
        assert compute_slot_performance(pd.DataFrame()).empty
        assert count_slots(pd.DataFrame()) == 0

    def test_count_slots(self, recurring_df):
        assert count_slots(recurring_df) == 3


class TestUnderperformingSlots:
    """Low fill slots."""

    def test_below_threshold_only(self, recurring_df):
        low = underperforming_slots(recurring_df, fill_threshold=50.0, min_sessions=3)

        assert list(low["cleaned_class"]) == ["Barre"]
        assert low.iloc[0]["fill_rate"] == 20.0

    def test_threshold_is_strict(self, recurring_df):
        low = underperforming_slots(recurring_df, fill_threshold=50.1, min_sessions=3)
        assert list(low["cleaned_class"]) == ["Barre", "PowerCycle"]


class TestTrainerComparison:
    """Trainer class averages against the slot average."""

    def test_vs_slot_average(self, recurring_df):
        result = compare_trainers_in_slots(recurring_df)
        cycle = result[result["cleaned_class"] == "PowerCycle"]

        assert list(cycle["trainer_name"]) == ["Anu K", "Rohan M"]
        assert list(cycle["slot_class_average"]) == [10.0, 10.0]
        assert list(cycle["vs_slot_average"]) == [1.0, -2.0]
        assert list(cycle["sessions"]) == [2, 1]

    def test_needs_trainer_column(self, recurring_df):
        assert compare_trainers_in_slots(recurring_df.drop(columns=["trainer_name"])).empty


class TestRecurringCards:
    """Cards for the recurring slots view."""

    def test_month_over_month(self, recurring_df):
        july = recurring_df.iloc[[0]].copy()
        july["date"] = pd.Timestamp("2025-07-28")
        cards = recurring_metric_cards(pd.concat([recurring_df, july], ignore_index=True), anchor="2025-09-01")

        assert find_card(cards, "Recurring Slots").value == 3
        assert find_card(cards, "Recurring Slots").previous_value == 1
        assert find_card(cards, "Recurring Sessions").value == 7
        assert find_card(cards, "Empty Sessions").value == 1
        assert find_card(cards, "Empty Sessions").invert is True
        assert find_card(cards, "Slot Revenue").value == 22500.0

    def test_no_data(self):
        assert recurring_metric_cards(pd.DataFrame()) == []
