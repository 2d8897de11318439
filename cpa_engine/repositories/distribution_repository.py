"""
Distribution repository.

Data access layer for DistributionRecord model.
"""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.models.distribution_record import DistributionRecord
from cpa_engine.models.enums import DistributionStatus
from cpa_engine.repositories.base import BaseRepository


class DistributionRepository(BaseRepository[DistributionRecord]):
    """Distribution repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize distribution repository."""
        super().__init__(DistributionRecord, session)

    async def insert_many(self, rows: list[dict[str, Any]]) -> list[int]:
        """
        Insert distribution rows in one statement.

        Rows that already exist for the same (event, participant) pair are
        skipped, so re-running an event never pays an ancestor twice.

        Args:
            rows: Column dicts

        Returns:
            IDs of the rows actually inserted
        """
        if not rows:
            return []

        stmt = (
            insert(DistributionRecord)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["event_id", "participant_id"])
            .returning(DistributionRecord.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_event(self, event_id: int) -> list[DistributionRecord]:
        """
        Get all distributions of an event.

        Args:
            event_id: Commission event ID

        Returns:
            Distributions ordered by level
        """
        stmt = (
            select(DistributionRecord)
            .where(DistributionRecord.event_id == event_id)
            .order_by(DistributionRecord.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def claim_for_statistics(self, event_id: int) -> list[Any]:
        """
        Mark an event's completed distributions as folded into statistics.

        Only rows not yet applied are returned, so concurrent or repeated
        calls for the same event see each row exactly once.

        Args:
            event_id: Commission event ID

        Returns:
            Rows with participant_id, level, distributed_amount and
            distribution_date
        """
        stmt = (
            update(DistributionRecord)
            .where(
                DistributionRecord.event_id == event_id,
                DistributionRecord.statistics_applied.is_(False),
                DistributionRecord.status == DistributionStatus.COMPLETED.value,
            )
            .values(statistics_applied=True)
            .returning(
                DistributionRecord.participant_id,
                DistributionRecord.level,
                DistributionRecord.distributed_amount,
                DistributionRecord.distribution_date,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return list(result.all())
