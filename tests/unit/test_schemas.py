"""
Unit tests for configuration and commission schemas.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from cpa_engine.schemas.commission import CommissionAttributes
from cpa_engine.schemas.config import (
    HierarchySettings,
    LevelPayoutTable,
    ValidationRuleSet,
)


class TestLevelPayoutTable:
    def test_provider_format(self):
        table = LevelPayoutTable.model_validate({"level_1": 50.0, "level_2": "20.00", "other": 1})

        assert table.amount_for(1) == Decimal("50.0")
        assert table.amount_for(2) == Decimal("20.00")
        assert table.amount_for(3) is None

    def test_to_payload(self):
        table = LevelPayoutTable.model_validate({"level_2": "20.00", "level_1": "50.00"})
        assert table.to_payload() == {"level_1": "50.00", "level_2": "20.00"}

    def test_invalid_amount(self):
        with pytest.raises(ValidationError):
            LevelPayoutTable.model_validate({"level_1": "fifty"})


class TestHierarchySettings:
    def test_defaults(self):
        settings = HierarchySettings()
        assert settings.max_hierarchy_levels == 5
        assert settings.minimum_amount == Decimal("0.01")

    @pytest.mark.parametrize("levels", [0, 11])
    def test_level_bounds(self, levels):
        with pytest.raises(ValidationError):
            HierarchySettings(max_hierarchy_levels=levels)

    def test_unknown_fields_ignored(self):
        settings = HierarchySettings.model_validate({"max_hierarchy_levels": 3, "legacy": True})
        assert settings.max_hierarchy_levels == 3


class TestValidationRuleSet:
    def test_provider_format(self):
        rules = ValidationRuleSet.model_validate(
            {
                "groups": [
                    {
                        "operator": "and",
                        "criteria": [
                            {"type": "deposit", "value": 30, "enabled": True},
                            {"type": "bets", "value": 10, "enabled": False},
                        ],
                    }
                ],
                "group_operator": "or",
            }
        )

        assert rules.group_operator == "OR"
        assert rules.groups[0].operator == "AND"
        assert rules.groups[0].criteria[0].threshold == Decimal("30")
        assert rules.groups[0].criteria[1].enabled is False
        assert not rules.is_empty

    def test_empty(self):
        assert ValidationRuleSet.model_validate({}).is_empty


class TestCommissionAttributes:
    def test_camel_case_input(self):
        attrs = CommissionAttributes.model_validate(
            {"amount": "50", "depositAmount": "100", "betsCount": 3, "daysActive": 2}
        )
        assert attrs.deposit_amount == Decimal("100")
        assert attrs.bets_count == 3
        assert attrs.rule_id == "default"

    def test_snake_case_input(self):
        attrs = CommissionAttributes.model_validate({"amount": "50", "total_bet_amount": "7.5"})
        assert attrs.total_bet_amount == Decimal("7.5")

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            CommissionAttributes.model_validate({"amount": amount})

    def test_measured(self):
        attrs = CommissionAttributes(amount=Decimal("50"), bets_count=4)
        assert attrs.measured("bets") == Decimal("4")
        assert attrs.measured("deposit") is None
        assert attrs.measured("unknown") is None
