"""
Hierarchy resolver.

Upline/downline traversal and participant upserts over the persisted
parent-pointer tree with materialized paths.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.config.constants import ORIGINATOR_LEVEL
from cpa_engine.models.participant_node import ParticipantNode
from cpa_engine.repositories.participant_repository import ParticipantRepository
from cpa_engine.services.base_service import BaseService, transaction
from cpa_engine.services.hierarchy.subtree_arena import SubtreeArena
from cpa_engine.utils.exceptions import (
    HierarchyCycleError,
    InvalidInputError,
    ParticipantNotFoundError,
)


@dataclass(frozen=True)
class UplineEntry:
    """Ancestor of an event originator. level 2 = parent."""

    participant_id: int
    level: int


@dataclass(frozen=True)
class HierarchyEntry:
    """Node of a downline listing. depth 1 = the queried participant."""

    participant_id: int
    parent_id: int | None
    level: int
    path: tuple[int, ...]
    depth: int


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of an upsert."""

    participant_id: int
    parent_id: int | None
    level: int
    path: tuple[int, ...]
    created: bool = False
    # Number of nodes whose level/path was written
    updated_count: int = 0


class HierarchyResolver(BaseService):
    """Participant hierarchy operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize hierarchy resolver."""
        super().__init__(session)
        self.participant_repo = ParticipantRepository(session)

    async def resolve_upline(
        self, participant_id: int, max_levels: int
    ) -> list[UplineEntry]:
        """
        Resolve active ancestors up to max_levels.

        The originator is level 1 and is never returned. Inactive ancestors
        are left out of the result but the walk continues through them, so
        the next active ancestor keeps its real distance.

        Args:
            participant_id: Event originator
            max_levels: Deepest level to return

        Returns:
            Ancestors ordered by level (2, 3, ...)

        Raises:
            ParticipantNotFoundError: If participant_id is unknown
        """
        max_hops = max(max_levels - ORIGINATOR_LEVEL, 0)
        chain = await self.participant_repo.get_upline_chain(participant_id, max_hops)

        if not chain:
            raise ParticipantNotFoundError(
                f"Participant {participant_id} not found",
                participant_id=participant_id,
            )

        upline = [
            UplineEntry(
                participant_id=link.participant_id,
                level=ORIGINATOR_LEVEL + link.hops,
            )
            for link in chain
            if link.hops > 0 and link.active
        ]

        self.logger.debug(
            "Upline resolved",
            extra={
                "participant_id": participant_id,
                "max_levels": max_levels,
                "walked": len(chain) - 1,
                "upline_length": len(upline),
            },
        )
        return upline

    async def resolve_descendants(
        self, participant_id: int, max_levels: int
    ) -> list[HierarchyEntry]:
        """
        Resolve the active downline for display.

        Args:
            participant_id: Top of the listing (depth 1)
            max_levels: Deepest depth to return

        Returns:
            Active nodes ordered by depth, level and participant ID

        Raises:
            ParticipantNotFoundError: If participant_id is unknown
        """
        rows = await self.participant_repo.get_descendants(participant_id, max_levels)
        if not rows:
            raise ParticipantNotFoundError(
                f"Participant {participant_id} not found",
                participant_id=participant_id,
            )

        return [
            HierarchyEntry(
                participant_id=row.participant_id,
                parent_id=row.parent_id,
                level=row.level,
                path=tuple(row.path),
                depth=row.depth,
            )
            for row in rows
            if row.active
        ]

    @transaction
    async def upsert(
        self, participant_id: int, parent_id: int | None = None
    ) -> UpsertResult:
        """
        Insert a participant or move it under a new parent.

        Level and path are always derived from the parent. An unknown parent
        is created as a root first. Moving a participant recomputes its
        whole subtree inside the same transaction, with every subtree row
        locked, so readers see either the old or the new tree.

        Args:
            participant_id: Participant to insert or move
            parent_id: New parent (None = root)

        Returns:
            UpsertResult

        Raises:
            HierarchyCycleError: If parent_id is the participant or one of
                its descendants
        """
        if participant_id == parent_id:
            raise HierarchyCycleError(
                f"Participant {participant_id} cannot be its own parent",
                participant_id=participant_id,
            )

        node = await self.participant_repo.get_by_participant_id(
            participant_id, for_update=True
        )

        if node is not None and node.parent_id == parent_id:
            return UpsertResult(
                participant_id=participant_id,
                parent_id=parent_id,
                level=node.level,
                path=tuple(node.path),
            )

        parent = await self._get_or_create_parent(parent_id)
        parent_path = list(parent.path) if parent is not None else []

        if node is None:
            node = await self.participant_repo.add_node(
                participant_id=participant_id,
                parent_id=parent_id,
                level=len(parent_path) + 1,
                path=[*parent_path, participant_id],
            )
            self.logger.info(
                "Participant added to hierarchy",
                extra={
                    "participant_id": participant_id,
                    "parent_id": parent_id,
                    "level": node.level,
                },
            )
            return UpsertResult(
                participant_id=participant_id,
                parent_id=parent_id,
                level=node.level,
                path=tuple(node.path),
                created=True,
                updated_count=1,
            )

        if participant_id in parent_path:
            raise HierarchyCycleError(
                f"Participant {parent_id} is a descendant of {participant_id}",
                participant_id=participant_id,
                parent_id=parent_id,
            )

        return await self._move_subtree(node, parent_id, parent_path)

    async def _get_or_create_parent(
        self, parent_id: int | None
    ) -> ParticipantNode | None:
        """Lock the parent row, creating it as a root when unknown."""
        if parent_id is None:
            return None

        parent = await self.participant_repo.get_by_participant_id(
            parent_id, for_update=True
        )
        if parent is not None:
            return parent

        self.logger.info(
            "Unknown parent, creating it as a root",
            extra={"parent_id": parent_id},
        )
        return await self.participant_repo.add_node(
            participant_id=parent_id, parent_id=None, level=1, path=[parent_id]
        )

    async def _move_subtree(
        self,
        node: ParticipantNode,
        parent_id: int | None,
        parent_path: list[int],
    ) -> UpsertResult:
        """Re-parent node and recompute level/path of its whole subtree."""
        subtree = await self.participant_repo.lock_subtree(node.participant_id)
        arena = SubtreeArena(node.participant_id, subtree)
        positions = arena.recompute(parent_id, parent_path)

        nodes_by_id = {n.participant_id: n for n in subtree}
        for position in positions:
            target = nodes_by_id[position.participant_id]
            target.parent_id = position.parent_id
            target.level = position.level
            target.path = list(position.path)

        await self.session.flush()

        moved = positions[0]
        self.logger.info(
            "Participant moved",
            extra={
                "participant_id": node.participant_id,
                "parent_id": parent_id,
                "level": moved.level,
                "descendants_updated": len(positions) - 1,
            },
        )
        return UpsertResult(
            participant_id=node.participant_id,
            parent_id=parent_id,
            level=moved.level,
            path=moved.path,
            updated_count=len(positions),
        )

    @transaction
    async def set_active(self, participant_id: int, active: bool) -> None:
        """
        Activate or deactivate a participant.

        Raises:
            ParticipantNotFoundError: If participant_id is unknown
        """
        if not isinstance(active, bool):
            raise InvalidInputError("active must be a boolean", active=active)

        found = await self.participant_repo.set_active(participant_id, active)
        if not found:
            raise ParticipantNotFoundError(
                f"Participant {participant_id} not found",
                participant_id=participant_id,
            )

        self.logger.info(
            "Participant activity changed",
            extra={"participant_id": participant_id, "active": active},
        )
