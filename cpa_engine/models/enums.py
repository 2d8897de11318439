"""
Status enums shared by models and services.
"""

import enum


class CommissionEventStatus(str, enum.Enum):
    """Lifecycle of a commission event."""

    PENDING = "PENDING"
    DISTRIBUTED = "DISTRIBUTED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


class DistributionStatus(str, enum.Enum):
    """Lifecycle of a distribution record."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not DistributionStatus.PENDING


class OperationStatus(str, enum.Enum):
    """Outcome recorded in the operation log."""

    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    WARNING = "WARNING"
