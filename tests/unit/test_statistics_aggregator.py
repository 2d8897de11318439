"""
Unit tests for the statistics aggregator.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from cpa_engine.services.distribution.statistics_aggregator import (
    StatisticsAggregator,
    StatisticsPeriod,
)
from cpa_engine.utils.exceptions import StatisticsUpdateError

PERIOD = StatisticsPeriod(start=date(2026, 10, 1), end=date(2026, 10, 31))


def record(participant_id, level, amount, event_id=1):
    return SimpleNamespace(
        event_id=event_id,
        participant_id=participant_id,
        level=level,
        distributed_amount=Decimal(amount),
    )


@pytest.fixture
def aggregator(mock_session):
    service = StatisticsAggregator(mock_session)
    service.distribution_repo = AsyncMock()
    service.statistics_repo = AsyncMock()
    return service


class TestStatisticsPeriod:
    def test_month_of(self):
        period = StatisticsPeriod.month_of(date(2024, 2, 14))
        assert period.start == date(2024, 2, 1)
        assert period.end == date(2024, 2, 29)

    def test_current_month_contains_today(self):
        period = StatisticsPeriod.current_month()
        assert period.start.day == 1
        assert period.start <= period.end
        assert period.start.month == period.end.month


class TestFold:
    def test_fold_per_participant_and_level(self):
        deltas = StatisticsAggregator.fold(
            [
                record(456, 2, "20.00"),
                record(789, 3, "5.00"),
                record(456, 2, "20.00", event_id=2),
                record(456, 3, "5.00", event_id=3),
            ]
        )

        assert set(deltas) == {456, 789}
        assert deltas[456].count == 3
        assert deltas[456].amount == Decimal("45.00")
        assert deltas[456].levels == {2: (2, Decimal("40.00")), 3: (1, Decimal("5.00"))}
        assert deltas[789].count == 1


class TestApply:
    """Merging into stored totals."""

    @pytest.mark.asyncio
    async def test_apply_increments_claimed_records(self, aggregator, mock_session):
        records = [record(456, 2, "20.00"), record(789, 3, "5.00")]
        aggregator.distribution_repo.claim_for_statistics.return_value = records

        counted = await aggregator.apply(records, PERIOD)

        assert counted == 2
        aggregator.distribution_repo.claim_for_statistics.assert_awaited_once_with(1)
        assert aggregator.statistics_repo.increment_snapshot.await_count == 2
        aggregator.statistics_repo.increment_snapshot.assert_any_await(
            participant_id=456,
            period_start=PERIOD.start,
            period_end=PERIOD.end,
            count=1,
            amount=Decimal("20.00"),
        )
        aggregator.statistics_repo.increment_level.assert_any_await(
            participant_id=789,
            period_start=PERIOD.start,
            period_end=PERIOD.end,
            level=3,
            count=1,
            amount=Decimal("5.00"),
        )
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_apply_changes_nothing(self, aggregator):
        """Records claimed once are never counted again."""
        records = [record(456, 2, "20.00")]
        aggregator.distribution_repo.claim_for_statistics.side_effect = [records, []]

        first = await aggregator.apply(records, PERIOD)
        second = await aggregator.apply(records, PERIOD)

        assert first == 1
        assert second == 0
        assert aggregator.statistics_repo.increment_snapshot.await_count == 1
        assert aggregator.statistics_repo.increment_level.await_count == 1

    @pytest.mark.asyncio
    async def test_nothing_to_apply(self, aggregator, mock_session):
        assert await aggregator.apply([], PERIOD) == 0
        aggregator.distribution_repo.claim_for_statistics.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, aggregator, mock_session):
        records = [record(456, 2, "20.00")]
        aggregator.distribution_repo.claim_for_statistics.return_value = records
        aggregator.statistics_repo.increment_level.side_effect = RuntimeError("db down")

        with pytest.raises(StatisticsUpdateError) as exc_info:
            await aggregator.apply(records, PERIOD)

        assert exc_info.value.context["event_ids"] == [1]
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()


class TestGetStatistics:
    @pytest.mark.asyncio
    async def test_view_with_levels(self, aggregator):
        aggregator.statistics_repo.get_snapshot.return_value = SimpleNamespace(
            total_count=3, total_amount=Decimal("45.00")
        )
        aggregator.statistics_repo.get_level_totals.return_value = {
            2: (2, Decimal("40.00")),
            3: (1, Decimal("5.00")),
        }

        view = await aggregator.get_statistics(456, PERIOD.start, PERIOD.end)

        assert view.total_count == 3
        assert view.total_amount == Decimal("45.00")
        assert view.levels[2] == {"count": 2, "amount": Decimal("40.00")}

    @pytest.mark.asyncio
    async def test_nothing_recorded(self, aggregator):
        aggregator.statistics_repo.get_snapshot.return_value = None
        assert await aggregator.get_statistics(456, PERIOD.start, PERIOD.end) is None
