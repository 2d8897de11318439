"""Pydantic schemas for configuration payloads and inbound events."""

from cpa_engine.schemas.commission import CRITERION_ATTRIBUTES, CommissionAttributes
from cpa_engine.schemas.config import (
    DEFAULT_HIERARCHY_SETTINGS,
    DEFAULT_LEVEL_PAYOUT_TABLE,
    DEFAULT_SYSTEM_SETTINGS,
    DEFAULT_VALIDATION_RULE_SET,
    HierarchySettings,
    LevelPayoutTable,
    SystemSettings,
    ValidationCriterion,
    ValidationGroup,
    ValidationRuleSet,
)

__all__ = [
    "CRITERION_ATTRIBUTES",
    "CommissionAttributes",
    "DEFAULT_HIERARCHY_SETTINGS",
    "DEFAULT_LEVEL_PAYOUT_TABLE",
    "DEFAULT_SYSTEM_SETTINGS",
    "DEFAULT_VALIDATION_RULE_SET",
    "HierarchySettings",
    "LevelPayoutTable",
    "SystemSettings",
    "ValidationCriterion",
    "ValidationGroup",
    "ValidationRuleSet",
]
