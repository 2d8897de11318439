"""Pydantic schemas for inbound commission events."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cpa_engine.config.constants import DEFAULT_VALIDATION_RULE_ID

# Criterion type -> measured attribute on CommissionAttributes
CRITERION_ATTRIBUTES = {
    "deposit": "deposit_amount",
    "bets": "bets_count",
    "bet_amount": "total_bet_amount",
    "days_active": "days_active",
}


class CommissionAttributes(BaseModel):
    """Measured attributes of a CPA event.

    Accepts both snake_case and the camelCase names used by upstream
    services (``depositAmount``, ``betsCount``, ...).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    amount: Decimal = Field(..., gt=0, description="Base CPA amount credited to the originator")
    deposit_amount: Decimal | None = Field(default=None, ge=0)
    bets_count: int | None = Field(default=None, ge=0)
    total_bet_amount: Decimal | None = Field(default=None, ge=0)
    days_active: int | None = Field(default=None, ge=0)
    rule_id: str = Field(default=DEFAULT_VALIDATION_RULE_ID, max_length=50)
    criteria: dict[str, Any] = Field(default_factory=dict)

    def measured(self, criterion_type: str) -> Decimal | None:
        """
        Measured value for a criterion type.

        Args:
            criterion_type: One of CRITERION_ATTRIBUTES keys

        Returns:
            Value as Decimal, None for unknown types or unmeasured attributes
        """
        attribute = CRITERION_ATTRIBUTES.get(criterion_type)
        if attribute is None:
            return None
        value = getattr(self, attribute)
        if value is None:
            return None
        return Decimal(value)
