"""
Unit tests for the distribution calculator.
"""

from decimal import Decimal

import pytest

from cpa_engine.schemas.config import HierarchySettings, LevelPayoutTable
from cpa_engine.services.distribution.distribution_calculator import (
    DistributionCalculator,
    transaction_id,
)
from cpa_engine.services.hierarchy.hierarchy_resolver import UplineEntry


@pytest.fixture
def calculator():
    return DistributionCalculator()


@pytest.fixture
def payout_table():
    """Provider-format table."""
    return LevelPayoutTable.model_validate(
        {"level_1": 50, "level_2": "20.00", "level_3": "5.00", "level_4": 5, "level_5": 5}
    )


@pytest.fixture
def hierarchy():
    return HierarchySettings(max_hierarchy_levels=5, minimum_amount=Decimal("0.01"))


class TestCalculate:
    """Per-level payout computation."""

    def test_flat_amounts_per_level(self, calculator, payout_table, hierarchy):
        """Two ancestors get the table amounts for their levels."""
        upline = [UplineEntry(participant_id=456, level=2), UplineEntry(participant_id=789, level=3)]

        result = calculator.calculate(upline, payout_table, hierarchy)

        assert [(d.participant_id, d.level, d.amount) for d in result] == [
            (456, 2, Decimal("20.00")),
            (789, 3, Decimal("5.00")),
        ]
        assert calculator.total(result) == Decimal("25.00")
        assert all(d.currency == "BRL" for d in result)

    def test_zero_level_is_omitted(self, calculator, hierarchy):
        """A level paying 0 produces no distribution."""
        table = LevelPayoutTable.model_validate({"level_2": 0, "level_3": 5})
        upline = [UplineEntry(456, 2), UplineEntry(789, 3)]

        result = calculator.calculate(upline, table, hierarchy)

        assert len(result) == 1
        assert result[0].participant_id == 789
        assert result[0].level == 3
        assert result[0].amount == Decimal("5")

    def test_missing_level_is_omitted(self, calculator, hierarchy):
        """Levels absent from the table are skipped."""
        table = LevelPayoutTable.model_validate({"level_2": 20})
        result = calculator.calculate([UplineEntry(456, 2), UplineEntry(789, 3)], table, hierarchy)
        assert [d.participant_id for d in result] == [456]

    def test_minimum_amount_floor(self, calculator, payout_table):
        """Amounts below the floor are dropped, equal amounts kept."""
        hierarchy = HierarchySettings(max_hierarchy_levels=5, minimum_amount=Decimal("5.00"))
        table = LevelPayoutTable.model_validate({"level_2": "4.99", "level_3": "5.00"})

        result = calculator.calculate([UplineEntry(1, 2), UplineEntry(2, 3)], table, hierarchy)

        assert [d.level for d in result] == [3]

    def test_levels_beyond_max_are_skipped(self, calculator, payout_table):
        """Only levels up to max_hierarchy_levels pay out."""
        hierarchy = HierarchySettings(max_hierarchy_levels=3)
        upline = [UplineEntry(10, 2), UplineEntry(11, 3), UplineEntry(12, 4), UplineEntry(13, 5)]

        result = calculator.calculate(upline, payout_table, hierarchy)

        assert [d.level for d in result] == [2, 3]

    def test_gapped_upline_keeps_level_labels(self, calculator, payout_table, hierarchy):
        """An ancestor keeps its own level even when a closer one is missing."""
        result = calculator.calculate([UplineEntry(20, 3)], payout_table, hierarchy)
        assert result[0].level == 3
        assert result[0].amount == Decimal("5.00")

    def test_empty_upline(self, calculator, payout_table, hierarchy):
        """No ancestors, no distributions."""
        assert calculator.calculate([], payout_table, hierarchy) == []
        assert calculator.total([]) == Decimal("0")


class TestTransactionId:
    """Deterministic transaction ids."""

    def test_format(self):
        assert transaction_id(12, 456) == "CPA_12_456"

    def test_unique_per_event_and_participant(self):
        assert transaction_id(1, 2) != transaction_id(2, 1)
