"""
Unit tests for the subtree arena used by hierarchy moves.
"""

from types import SimpleNamespace

import pytest

from cpa_engine.services.hierarchy.subtree_arena import SubtreeArena
from cpa_engine.utils.exceptions import HierarchyError


def node(participant_id, parent_id):
    return SimpleNamespace(participant_id=participant_id, parent_id=parent_id)


class TestSubtreeArena:
    """Recomputing level/path for a moved subtree."""

    def test_recompute_every_node(self):
        """Root plus K descendants yields K+1 positions with consistent paths."""
        nodes = [node(2, 1), node(3, 2), node(4, 2), node(5, 3)]
        arena = SubtreeArena(2, nodes)

        positions = arena.recompute(10, [10])

        assert len(arena) == 4
        assert len(positions) == 4
        by_id = {p.participant_id: p for p in positions}
        assert by_id[2].parent_id == 10
        assert by_id[2].path == (10, 2)
        assert by_id[5].path == (10, 2, 3, 5)
        for position in positions:
            assert position.level == len(position.path)
            assert position.path[-1] == position.participant_id

    def test_parents_placed_before_children(self):
        """Breadth-first order."""
        nodes = [node(5, 3), node(3, 2), node(2, 1), node(4, 2)]
        positions = SubtreeArena(2, nodes).recompute(None, [])

        order = [p.participant_id for p in positions]
        assert order.index(2) < order.index(3) < order.index(5)
        assert positions[0].path == (2,)
        assert positions[0].parent_id is None

    def test_missing_root_rejected(self):
        with pytest.raises(HierarchyError):
            SubtreeArena(2, [node(3, 2)])

    def test_parent_outside_subtree_rejected(self):
        """Every non-root node must hang under another arena node."""
        with pytest.raises(HierarchyError):
            SubtreeArena(2, [node(2, 1), node(3, 99)])

    def test_unreachable_nodes_rejected(self):
        """A detached loop inside the node set is reported."""
        arena = SubtreeArena(2, [node(2, 1), node(3, 4), node(4, 3)])

        with pytest.raises(HierarchyError) as exc_info:
            arena.recompute(10, [10])

        assert sorted(exc_info.value.context["unreachable"]) == [3, 4]
