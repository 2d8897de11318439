"""
Hierarchy services package.

- subtree_arena: in-memory subtree used for cascading recomputes
- hierarchy_resolver: upline/downline traversal and upserts
"""

from cpa_engine.services.hierarchy.hierarchy_resolver import (
    HierarchyEntry,
    HierarchyResolver,
    UplineEntry,
    UpsertResult,
)
from cpa_engine.services.hierarchy.subtree_arena import NodePosition, SubtreeArena

__all__ = [
    "HierarchyEntry",
    "HierarchyResolver",
    "NodePosition",
    "SubtreeArena",
    "UplineEntry",
    "UpsertResult",
]
