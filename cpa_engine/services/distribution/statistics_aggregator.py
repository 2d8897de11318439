"""
Statistics aggregator.

Folds distributions into per-participant, per-period totals.

Duplicate detection relies on DistributionRecord.statistics_applied: a
record is claimed (flag flipped false -> true) in the same transaction that
increments the totals, and only claimed records are counted. Re-applying an
already applied batch claims nothing and changes nothing.
"""

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.repositories.distribution_repository import DistributionRepository
from cpa_engine.repositories.statistics_repository import StatisticsRepository
from cpa_engine.services.base_service import BaseService
from cpa_engine.utils.exceptions import StatisticsUpdateError


@dataclass(frozen=True)
class StatisticsPeriod:
    """Closed date range."""

    start: date
    end: date

    @classmethod
    def month_of(cls, day: date) -> "StatisticsPeriod":
        last_day = calendar.monthrange(day.year, day.month)[1]
        return cls(start=day.replace(day=1), end=day.replace(day=last_day))

    @classmethod
    def current_month(cls) -> "StatisticsPeriod":
        return cls.month_of(datetime.now(UTC).date())


@dataclass
class ParticipantDelta:
    """Increment for one participant: total plus per-level breakdown."""

    count: int = 0
    amount: Decimal = Decimal("0")
    levels: dict[int, tuple[int, Decimal]] = field(default_factory=dict)

    def add(self, level: int, amount: Decimal) -> None:
        self.count += 1
        self.amount += amount
        level_count, level_amount = self.levels.get(level, (0, Decimal("0")))
        self.levels[level] = (level_count + 1, level_amount + amount)


@dataclass(frozen=True)
class StatisticsView:
    """Stored totals of a participant for a period."""

    participant_id: int
    period_start: date
    period_end: date
    total_count: int
    total_amount: Decimal
    levels: dict[int, dict[str, Any]]


class StatisticsAggregator(BaseService):
    """Per-participant statistics rollup."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics aggregator."""
        super().__init__(session)
        self.distribution_repo = DistributionRepository(session)
        self.statistics_repo = StatisticsRepository(session)

    @staticmethod
    def fold(records: Iterable[Any]) -> dict[int, ParticipantDelta]:
        """
        Fold distributions into per-participant deltas.

        Args:
            records: Objects with participant_id, level, distributed_amount

        Returns:
            Dict mapping participant ID to its delta
        """
        deltas: dict[int, ParticipantDelta] = {}
        for record in records:
            delta = deltas.setdefault(record.participant_id, ParticipantDelta())
            delta.add(record.level, Decimal(record.distributed_amount))
        return deltas

    async def apply(
        self,
        records: Iterable[Any],
        period: StatisticsPeriod | None = None,
    ) -> int:
        """
        Merge distributions into stored statistics.

        Args:
            records: Persisted distributions (anything with event_id)
            period: Target period (defaults to the current month)

        Returns:
            Number of distributions counted by this call (0 for a duplicate)

        Raises:
            StatisticsUpdateError: If the merge failed; nothing was applied
        """
        period = period or StatisticsPeriod.current_month()
        event_ids = sorted({record.event_id for record in records})
        if not event_ids:
            return 0

        try:
            claimed = []
            for event_id in event_ids:
                claimed.extend(
                    await self.distribution_repo.claim_for_statistics(event_id)
                )

            deltas = self.fold(claimed)
            for participant_id, delta in sorted(deltas.items()):
                await self.statistics_repo.increment_snapshot(
                    participant_id=participant_id,
                    period_start=period.start,
                    period_end=period.end,
                    count=delta.count,
                    amount=delta.amount,
                )
                for level, (count, amount) in sorted(delta.levels.items()):
                    await self.statistics_repo.increment_level(
                        participant_id=participant_id,
                        period_start=period.start,
                        period_end=period.end,
                        level=level,
                        count=count,
                        amount=amount,
                    )

            await self.commit()
        except Exception as e:
            await self.rollback()
            raise StatisticsUpdateError(
                f"Statistics update failed: {e}", event_ids=event_ids
            ) from e

        if not claimed:
            self.logger.info(
                "Statistics already applied, skipping",
                extra={"event_ids": event_ids},
            )
        else:
            self.logger.debug(
                "Statistics applied",
                extra={
                    "event_ids": event_ids,
                    "records": len(claimed),
                    "participants": len(deltas),
                    "period_start": period.start.isoformat(),
                },
            )
        return len(claimed)

    async def get_statistics(
        self, participant_id: int, period_start: date, period_end: date
    ) -> StatisticsView | None:
        """
        Get stored totals.

        Args:
            participant_id: Participant ID
            period_start: First day of the period
            period_end: Last day of the period

        Returns:
            StatisticsView or None if nothing was recorded
        """
        snapshot = await self.statistics_repo.get_snapshot(
            participant_id, period_start, period_end
        )
        if snapshot is None:
            return None

        level_totals = await self.statistics_repo.get_level_totals(
            participant_id, period_start, period_end
        )
        return StatisticsView(
            participant_id=participant_id,
            period_start=period_start,
            period_end=period_end,
            total_count=snapshot.total_count,
            total_amount=snapshot.total_amount,
            levels={
                level: {"count": count, "amount": amount}
                for level, (count, amount) in level_totals.items()
            },
        )
