"""Pydantic schemas for configuration payloads.

Every key consumed from the config service has a typed, versioned schema.
Raw payloads are validated at the cache boundary; anything that fails
validation is replaced by the per-key default below.
"""

import re
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from cpa_engine.config.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CURRENCY,
    DEFAULT_MAX_HIERARCHY_LEVELS,
    DEFAULT_MINIMUM_AMOUNT,
)

_LEVEL_KEY = re.compile(r"^level_(\d+)$")

AND = "AND"
OR = "OR"


class ConfigPayload(BaseModel):
    """Base for configuration payloads."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    schema_version: int = Field(default=1, ge=1, description="Payload schema version")


class LevelPayoutTable(ConfigPayload):
    """Flat payout per hierarchy level.

    Accepts the provider format ``{"level_1": 50.0, "level_2": 20.0, ...}``.
    """

    amounts: dict[int, Decimal] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def parse_level_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "amounts" in data:
            return data
        amounts = {}
        for key, value in data.items():
            match = _LEVEL_KEY.match(str(key))
            if match:
                amounts[int(match.group(1))] = value
        parsed: dict[str, Any] = {"amounts": amounts}
        if "schema_version" in data:
            parsed["schema_version"] = data["schema_version"]
        return parsed

    def amount_for(self, level: int) -> Decimal | None:
        """Payout for level, None when the table has no entry."""
        return self.amounts.get(level)

    def to_payload(self) -> dict[str, str]:
        return {f"level_{level}": str(amount) for level, amount in sorted(self.amounts.items())}


class HierarchySettings(ConfigPayload):
    """Hierarchy limits and payout floor."""

    max_hierarchy_levels: int = Field(
        default=DEFAULT_MAX_HIERARCHY_LEVELS, ge=1, le=10,
        description="Deepest level that can receive a payout",
    )
    minimum_amount: Decimal = Field(
        default=DEFAULT_MINIMUM_AMOUNT, ge=0,
        description="Distributions below this amount are dropped",
    )
    currency: str = Field(default=DEFAULT_CURRENCY, min_length=1, max_length=10)
    calculation_method: str = "standard"
    auto_distribution: bool = True


class ValidationCriterion(ConfigPayload):
    """Single threshold check against a measured attribute."""

    type: str
    threshold: Decimal = Field(validation_alias=AliasChoices("threshold", "value"))
    enabled: bool = True


class ValidationGroup(ConfigPayload):
    """Criteria combined with AND/OR."""

    operator: str = OR
    criteria: list[ValidationCriterion] = Field(default_factory=list)

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> str:
        return str(v or OR).upper()


class ValidationRuleSet(ConfigPayload):
    """Two-level boolean rule tree."""

    groups: list[ValidationGroup] = Field(default_factory=list)
    group_operator: str = OR

    @field_validator("group_operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> str:
        return str(v or OR).upper()

    @property
    def is_empty(self) -> bool:
        return not self.groups


class SystemSettings(ConfigPayload):
    """Operational knobs shared with other services."""

    api_timeout: int = Field(default=30000, gt=0, description="Milliseconds")
    cache_ttl: int = Field(default=3600, gt=0, description="Seconds")
    max_retries: int = Field(default=3, ge=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    cpa_monitoring_interval: int = Field(default=300000, gt=0, description="Milliseconds")


DEFAULT_LEVEL_PAYOUT_TABLE = LevelPayoutTable(
    amounts={
        1: Decimal("50.00"),
        2: Decimal("20.00"),
        3: Decimal("5.00"),
        4: Decimal("5.00"),
        5: Decimal("5.00"),
    }
)
DEFAULT_HIERARCHY_SETTINGS = HierarchySettings()
DEFAULT_VALIDATION_RULE_SET = ValidationRuleSet()
DEFAULT_SYSTEM_SETTINGS = SystemSettings()
