"""
Statistics repository.

Data access layer for StatisticsSnapshot and StatisticsLevelTotal models.
All writes are single-statement upserts with in-database increments, so
concurrent writers for the same participant and period never lose updates.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.models.statistics_snapshot import (
    StatisticsLevelTotal,
    StatisticsSnapshot,
)
from cpa_engine.repositories.base import BaseRepository


class StatisticsRepository(BaseRepository[StatisticsSnapshot]):
    """Statistics repository with atomic increments."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics repository."""
        super().__init__(StatisticsSnapshot, session)

    async def increment_snapshot(
        self,
        participant_id: int,
        period_start: date,
        period_end: date,
        count: int,
        amount: Decimal,
    ) -> None:
        """
        Add count and amount to a participant's period totals.

        Args:
            participant_id: Participant ID
            period_start: First day of the period
            period_end: Last day of the period
            count: Number of distributions to add
            amount: Amount to add
        """
        stmt = insert(StatisticsSnapshot).values(
            participant_id=participant_id,
            period_start=period_start,
            period_end=period_end,
            total_count=count,
            total_amount=amount,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["participant_id", "period_start", "period_end"],
            set_={
                "total_count": StatisticsSnapshot.total_count
                + stmt.excluded.total_count,
                "total_amount": StatisticsSnapshot.total_amount
                + stmt.excluded.total_amount,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def increment_level(
        self,
        participant_id: int,
        period_start: date,
        period_end: date,
        level: int,
        count: int,
        amount: Decimal,
    ) -> None:
        """
        Add count and amount to a participant's per-level period totals.

        Args:
            participant_id: Participant ID
            period_start: First day of the period
            period_end: Last day of the period
            level: Distribution level
            count: Number of distributions to add
            amount: Amount to add
        """
        stmt = insert(StatisticsLevelTotal).values(
            participant_id=participant_id,
            period_start=period_start,
            period_end=period_end,
            level=level,
            count=count,
            amount=amount,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["participant_id", "period_start", "period_end", "level"],
            set_={
                "count": StatisticsLevelTotal.count + stmt.excluded["count"],
                "amount": StatisticsLevelTotal.amount + stmt.excluded.amount,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def get_snapshot(
        self, participant_id: int, period_start: date, period_end: date
    ) -> StatisticsSnapshot | None:
        """
        Get a participant's totals for a period.

        Args:
            participant_id: Participant ID
            period_start: First day of the period
            period_end: Last day of the period

        Returns:
            Snapshot or None if nothing was recorded
        """
        return await self.get_by(
            participant_id=participant_id,
            period_start=period_start,
            period_end=period_end,
        )

    async def get_level_totals(
        self, participant_id: int, period_start: date, period_end: date
    ) -> dict[int, tuple[int, Decimal]]:
        """
        Get a participant's per-level totals for a period.

        Args:
            participant_id: Participant ID
            period_start: First day of the period
            period_end: Last day of the period

        Returns:
            Dict mapping level to (count, amount)
        """
        stmt = (
            select(StatisticsLevelTotal)
            .where(
                StatisticsLevelTotal.participant_id == participant_id,
                StatisticsLevelTotal.period_start == period_start,
                StatisticsLevelTotal.period_end == period_end,
            )
            .order_by(StatisticsLevelTotal.level)
        )
        result = await self.session.execute(stmt)
        return {
            row.level: (row.count, row.amount)
            for row in result.scalars().all()
        }
