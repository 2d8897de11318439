"""
Participant repository.

Data access layer for the participant hierarchy.
"""

from dataclasses import dataclass

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.models.participant_node import ParticipantNode
from cpa_engine.repositories.base import BaseRepository


@dataclass(frozen=True)
class ChainLink:
    """One step of an upward walk. hops=0 is the starting participant."""

    participant_id: int
    active: bool
    hops: int


@dataclass(frozen=True)
class DescendantRow:
    """One node of a downward walk. depth=1 is the starting participant."""

    participant_id: int
    parent_id: int | None
    level: int
    path: list[int]
    active: bool
    depth: int


class ParticipantRepository(BaseRepository[ParticipantNode]):
    """Participant repository with hierarchy queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize participant repository."""
        super().__init__(ParticipantNode, session)

    async def get_by_participant_id(
        self, participant_id: int, for_update: bool = False
    ) -> ParticipantNode | None:
        """
        Get node by external participant ID.

        Args:
            participant_id: Participant ID
            for_update: Lock the row until the transaction ends

        Returns:
            Node or None if not found
        """
        return await self.get_by(for_update=for_update, participant_id=participant_id)

    async def get_upline_chain(
        self, participant_id: int, max_hops: int
    ) -> list[ChainLink]:
        """
        Walk parent pointers upward (PostgreSQL recursive CTE).

        Inactive nodes are returned too; filtering is up to the caller so the
        walk never stops at an inactive ancestor.

        Args:
            participant_id: Starting participant
            max_hops: Maximum number of parent hops

        Returns:
            Chain ordered by hops, starting with the participant itself
            (hops=0). Empty if the participant is unknown.
        """
        query = text("""
            WITH RECURSIVE upline_chain AS (
                -- Base case: start with the participant
                SELECT
                    n.participant_id,
                    n.parent_id,
                    n.active,
                    0 AS hops
                FROM participant_nodes n
                WHERE n.participant_id = :participant_id

                UNION ALL

                -- Recursive case: parent of previous step
                SELECT
                    n.participant_id,
                    n.parent_id,
                    n.active,
                    uc.hops + 1 AS hops
                FROM participant_nodes n
                INNER JOIN upline_chain uc ON n.participant_id = uc.parent_id
                WHERE uc.hops < :max_hops
            )
            SELECT participant_id, active, hops
            FROM upline_chain
            ORDER BY hops ASC
        """)

        result = await self.session.execute(
            query, {"participant_id": participant_id, "max_hops": max_hops}
        )
        return [
            ChainLink(
                participant_id=row.participant_id,
                active=row.active,
                hops=row.hops,
            )
            for row in result.all()
        ]

    async def get_descendants(
        self, participant_id: int, max_depth: int
    ) -> list[DescendantRow]:
        """
        Walk child links downward (PostgreSQL recursive CTE).

        Args:
            participant_id: Starting participant
            max_depth: Maximum depth, the participant itself is depth 1

        Returns:
            Rows ordered by depth, level and participant ID
        """
        query = text("""
            WITH RECURSIVE downline AS (
                SELECT
                    n.participant_id,
                    n.parent_id,
                    n.level,
                    n.path,
                    n.active,
                    1 AS depth
                FROM participant_nodes n
                WHERE n.participant_id = :participant_id

                UNION ALL

                SELECT
                    n.participant_id,
                    n.parent_id,
                    n.level,
                    n.path,
                    n.active,
                    d.depth + 1 AS depth
                FROM participant_nodes n
                INNER JOIN downline d ON n.parent_id = d.participant_id
                WHERE d.depth < :max_depth
            )
            SELECT *
            FROM downline
            ORDER BY depth, level, participant_id
        """)

        result = await self.session.execute(
            query, {"participant_id": participant_id, "max_depth": max_depth}
        )
        return [
            DescendantRow(
                participant_id=row.participant_id,
                parent_id=row.parent_id,
                level=row.level,
                path=list(row.path),
                active=row.active,
                depth=row.depth,
            )
            for row in result.all()
        ]

    async def lock_subtree(self, participant_id: int) -> list[ParticipantNode]:
        """
        Lock a participant and all of its descendants.

        Uses the materialized path (GIN indexed), so inactive descendants are
        included as well.

        Args:
            participant_id: Subtree root

        Returns:
            Locked nodes ordered by level (root of the subtree first)
        """
        stmt = (
            select(ParticipantNode)
            .where(ParticipantNode.path.contains([participant_id]))
            .order_by(ParticipantNode.level, ParticipantNode.participant_id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_node(
        self,
        participant_id: int,
        parent_id: int | None,
        level: int,
        path: list[int],
    ) -> ParticipantNode:
        """
        Insert a new node.

        Args:
            participant_id: Participant ID
            parent_id: Parent participant ID (None for a root)
            level: Depth from root
            path: Root-to-self participant IDs

        Returns:
            Created node
        """
        return await self.create(
            participant_id=participant_id,
            parent_id=parent_id,
            level=level,
            path=path,
            active=True,
        )

    async def set_active(self, participant_id: int, active: bool) -> bool:
        """
        Activate or deactivate a node. Nodes are never deleted.

        Args:
            participant_id: Participant ID
            active: New activity flag

        Returns:
            True if the node exists
        """
        stmt = (
            update(ParticipantNode)
            .where(ParticipantNode.participant_id == participant_id)
            .values(active=active)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
