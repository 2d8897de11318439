"""
Engine services.

- config_client / config_cache: configuration pulled from and pushed by the
  config service
- hierarchy: participant tree
- distribution: validation, payouts, statistics, per-event pipeline, batches
- distribution_service: operation surface
"""

from cpa_engine.services.config_cache import CacheEntry, ConfigCache
from cpa_engine.services.config_client import ConfigProviderClient
from cpa_engine.services.distribution_service import (
    DistributionService,
    create_distribution_service,
)

__all__ = [
    "CacheEntry",
    "ConfigCache",
    "ConfigProviderClient",
    "DistributionService",
    "create_distribution_service",
]
