"""
Distribution services package.

- eligibility_validator: rule-set evaluation
- distribution_calculator: flat per-level payouts
- statistics_aggregator: per-participant period totals
- distribution_orchestrator: the per-event pipeline
- batch_processor: pending-event batches
"""

from cpa_engine.services.distribution.batch_processor import (
    BatchProcessor,
    BatchResult,
    NullEventSource,
    OperationDatabaseSource,
    PendingCpa,
    PendingEventSource,
)
from cpa_engine.services.distribution.distribution_calculator import (
    DistributionCalculator,
    PendingDistribution,
    transaction_id,
)
from cpa_engine.services.distribution.distribution_orchestrator import (
    DistributionOrchestrator,
    DistributionOutcome,
    DistributionStage,
)
from cpa_engine.services.distribution.eligibility_validator import (
    EligibilityResult,
    EligibilityValidator,
    GroupResult,
)
from cpa_engine.services.distribution.statistics_aggregator import (
    ParticipantDelta,
    StatisticsAggregator,
    StatisticsPeriod,
    StatisticsView,
)

__all__ = [
    # Pure components
    "DistributionCalculator",
    "EligibilityResult",
    "EligibilityValidator",
    "GroupResult",
    "PendingDistribution",
    "transaction_id",
    # Pipeline
    "DistributionOrchestrator",
    "DistributionOutcome",
    "DistributionStage",
    # Statistics
    "ParticipantDelta",
    "StatisticsAggregator",
    "StatisticsPeriod",
    "StatisticsView",
    # Batch
    "BatchProcessor",
    "BatchResult",
    "NullEventSource",
    "OperationDatabaseSource",
    "PendingCpa",
    "PendingEventSource",
]
