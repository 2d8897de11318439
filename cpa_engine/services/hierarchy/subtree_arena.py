"""
Subtree arena.

In-memory, index-based copy of a subtree used to recompute level/path for a
moved participant and all of its descendants in one breadth-first pass.
"""

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from cpa_engine.utils.exceptions import HierarchyError

_NO_PARENT = -1


class TreeNode(Protocol):
    participant_id: int
    parent_id: int | None


@dataclass(frozen=True)
class NodePosition:
    """Recomputed placement of one node."""

    participant_id: int
    parent_id: int | None
    level: int
    path: tuple[int, ...]


class SubtreeArena:
    """
    Subtree stored as flat arrays.

    Slot i holds participant ``ids[i]``; ``parent_slots[i]`` is the slot of
    its parent inside the arena (-1 for the subtree root) and
    ``children[i]`` the slots of its children.
    """

    def __init__(self, root_id: int, nodes: Iterable[TreeNode]) -> None:
        """
        Build the arena.

        Args:
            root_id: Participant being moved
            nodes: The root and every descendant (any order)

        Raises:
            HierarchyError: If the nodes don't form a single tree under root_id
        """
        self.ids: list[int] = []
        self.slots: dict[int, int] = {}
        parent_ids: list[int | None] = []

        for node in nodes:
            if node.participant_id in self.slots:
                continue
            self.slots[node.participant_id] = len(self.ids)
            self.ids.append(node.participant_id)
            parent_ids.append(node.parent_id)

        if root_id not in self.slots:
            raise HierarchyError(
                f"Participant {root_id} missing from its own subtree",
                participant_id=root_id,
            )

        self.root_slot = self.slots[root_id]
        self.parent_slots: list[int] = [_NO_PARENT] * len(self.ids)
        self.children: list[list[int]] = [[] for _ in self.ids]

        for slot, parent_id in enumerate(parent_ids):
            if slot == self.root_slot:
                continue
            parent_slot = self.slots.get(parent_id) if parent_id is not None else None
            if parent_slot is None:
                raise HierarchyError(
                    f"Participant {self.ids[slot]} is in the subtree of {root_id} "
                    f"but its parent {parent_id} is not",
                    participant_id=self.ids[slot],
                )
            self.parent_slots[slot] = parent_slot
            self.children[parent_slot].append(slot)

    def __len__(self) -> int:
        return len(self.ids)

    def recompute(
        self, new_parent_id: int | None, new_parent_path: Iterable[int]
    ) -> list[NodePosition]:
        """
        Place the subtree root under a new parent and recompute every node.

        Nodes are visited breadth-first, so a node's parent is always placed
        before the node itself.

        Args:
            new_parent_id: New parent of the subtree root (None = root)
            new_parent_path: Path of the new parent ([] for None)

        Returns:
            One position per arena node, in visiting order

        Raises:
            HierarchyError: If some node is unreachable from the subtree root
        """
        paths: list[tuple[int, ...] | None] = [None] * len(self.ids)
        positions: list[NodePosition] = []

        root_path = (*tuple(new_parent_path), self.ids[self.root_slot])
        paths[self.root_slot] = root_path
        queue = deque([self.root_slot])

        while queue:
            slot = queue.popleft()
            path = paths[slot]
            parent_slot = self.parent_slots[slot]
            positions.append(
                NodePosition(
                    participant_id=self.ids[slot],
                    parent_id=(
                        new_parent_id if slot == self.root_slot else self.ids[parent_slot]
                    ),
                    level=len(path),
                    path=path,
                )
            )
            for child in self.children[slot]:
                if paths[child] is not None:
                    continue
                paths[child] = (*path, self.ids[child])
                queue.append(child)

        if len(positions) != len(self.ids):
            unreachable = [
                self.ids[slot] for slot, path in enumerate(paths) if path is None
            ]
            raise HierarchyError(
                "Subtree contains nodes unreachable from its root",
                participant_id=self.ids[self.root_slot],
                unreachable=unreachable,
            )

        return positions
