"""
Commission event repository.

Data access layer for CommissionEvent model.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.models.commission_event import CommissionEvent
from cpa_engine.models.distribution_record import DistributionRecord
from cpa_engine.repositories.base import BaseRepository


class CommissionEventRepository(BaseRepository[CommissionEvent]):
    """Commission event repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission event repository."""
        super().__init__(CommissionEvent, session)

    async def create_event(self, **data) -> CommissionEvent:
        """
        Insert an event, idempotent on source_reference.

        Events without a source reference are always inserted. Events with a
        reference that already exists return the stored row, so a retried
        batch item resumes on the same event.

        Args:
            **data: Event columns

        Returns:
            Stored event
        """
        source_reference = data.get("source_reference")
        if source_reference is None:
            return await self.create(**data)

        stmt = (
            insert(CommissionEvent)
            .values(**data)
            .on_conflict_do_nothing(index_elements=["source_reference"])
            .returning(CommissionEvent.id)
        )
        result = await self.session.execute(stmt)
        inserted_id = result.scalar_one_or_none()

        if inserted_id is not None:
            return await self.get_by_id(inserted_id)

        existing = await self.get_by(source_reference=source_reference)
        return existing

    async def find_for_participant(
        self,
        participant_id: int,
        status: str | None = None,
        level: int | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
    ) -> list[CommissionEvent]:
        """
        Events that credited a participant, as originator or as an ancestor.

        Args:
            participant_id: Participant ID
            status: Optional event status filter
            level: Optional level filter (1 = originator, 2+ = ancestor)
            date_from: Optional lower bound on validated_at
            date_to: Optional upper bound on validated_at
            limit: Max number of results

        Returns:
            Events, newest first
        """
        if level == 1:
            participant_filter = (
                CommissionEvent.originating_participant_id == participant_id
            )
        else:
            distributed_to = select(DistributionRecord.event_id).where(
                DistributionRecord.participant_id == participant_id
            )
            if level is not None:
                distributed_to = distributed_to.where(DistributionRecord.level == level)
            participant_filter = CommissionEvent.id.in_(distributed_to)
            if level is None:
                participant_filter = (
                    participant_filter
                    | (CommissionEvent.originating_participant_id == participant_id)
                )

        stmt = select(CommissionEvent).where(participant_filter)

        if status:
            stmt = stmt.where(CommissionEvent.status == status)
        if date_from:
            stmt = stmt.where(CommissionEvent.validated_at >= date_from)
        if date_to:
            stmt = stmt.where(CommissionEvent.validated_at <= date_to)

        stmt = stmt.order_by(CommissionEvent.validated_at.desc())

        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
