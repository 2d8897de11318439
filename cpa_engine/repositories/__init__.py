"""Repositories (data access layer)."""

from cpa_engine.repositories.base import BaseRepository
from cpa_engine.repositories.commission_event_repository import (
    CommissionEventRepository,
)
from cpa_engine.repositories.distribution_repository import DistributionRepository
from cpa_engine.repositories.operation_log_repository import OperationLogRepository
from cpa_engine.repositories.participant_repository import (
    ChainLink,
    DescendantRow,
    ParticipantRepository,
)
from cpa_engine.repositories.statistics_repository import StatisticsRepository

__all__ = [
    "BaseRepository",
    "ChainLink",
    "CommissionEventRepository",
    "DescendantRow",
    "DistributionRepository",
    "OperationLogRepository",
    "ParticipantRepository",
    "StatisticsRepository",
]
