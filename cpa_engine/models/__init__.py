"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from cpa_engine.models.base import Base
from cpa_engine.models.commission_event import CommissionEvent
from cpa_engine.models.distribution_record import DistributionRecord
from cpa_engine.models.enums import (
    CommissionEventStatus,
    DistributionStatus,
    OperationStatus,
)
from cpa_engine.models.operation_log import OperationLog
from cpa_engine.models.participant_node import ParticipantNode
from cpa_engine.models.statistics_snapshot import (
    StatisticsLevelTotal,
    StatisticsSnapshot,
)

__all__ = [
    "Base",
    "CommissionEvent",
    "CommissionEventStatus",
    "DistributionRecord",
    "DistributionStatus",
    "OperationLog",
    "OperationStatus",
    "ParticipantNode",
    "StatisticsLevelTotal",
    "StatisticsSnapshot",
]
