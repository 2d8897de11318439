"""
Unit tests for the eligibility validator.

Tests cover:
- Empty rule sets (fail-open and fail-closed)
- AND/OR group semantics, including empty groups
- Disabled and unknown criteria
- Missing measurements
"""

from decimal import Decimal

import pytest

from cpa_engine.schemas.commission import CommissionAttributes
from cpa_engine.schemas.config import (
    ValidationCriterion,
    ValidationGroup,
    ValidationRuleSet,
)
from cpa_engine.services.distribution.eligibility_validator import (
    EligibilityValidator,
    combine,
)


@pytest.fixture
def validator():
    """Fail-open validator."""
    return EligibilityValidator(fail_closed=False)


@pytest.fixture
def attributes():
    """Event with every attribute measured."""
    return CommissionAttributes(
        amount=Decimal("50"),
        deposit_amount=Decimal("100"),
        bets_count=12,
        total_bet_amount=Decimal("250.50"),
        days_active=7,
    )


def criterion(type_, threshold, enabled=True):
    return ValidationCriterion(type=type_, threshold=Decimal(str(threshold)), enabled=enabled)


def rules(*groups, group_operator="OR"):
    return ValidationRuleSet(groups=list(groups), group_operator=group_operator)


class TestEmptyRuleSet:
    """Rule sets without groups."""

    def test_empty_rule_set_allows(self, validator, attributes):
        """Empty rule set approves any event."""
        assert validator.validate(attributes, ValidationRuleSet()) is True

    def test_absent_rule_set_allows(self, validator):
        """No rule set at all approves even a bare event."""
        bare = CommissionAttributes(amount=Decimal("1"))
        assert validator.validate(bare, None) is True

    def test_fail_closed_rejects_empty_rule_set(self, attributes):
        """Fail-closed policy rejects when nothing is configured."""
        strict = EligibilityValidator(fail_closed=True)
        result = strict.evaluate(attributes, ValidationRuleSet())
        assert result.approved is False
        assert result.reason == "no rules configured"


class TestGroupSemantics:
    """AND/OR combination inside groups."""

    def test_or_group_with_zero_enabled_criteria_rejects(self, validator, attributes):
        """OR over zero criteria is not satisfied."""
        rule_set = rules(ValidationGroup(operator="OR", criteria=[]))
        assert validator.validate(attributes, rule_set) is False

    def test_or_group_with_only_disabled_criteria_rejects(self, validator, attributes):
        """Disabled criteria don't count, so the OR group is empty."""
        rule_set = rules(
            ValidationGroup(
                operator="OR", criteria=[criterion("deposit", 10, enabled=False)]
            )
        )
        assert validator.validate(attributes, rule_set) is False

    def test_and_group_with_zero_enabled_criteria_allows(self, validator, attributes):
        """AND over zero criteria is vacuously true."""
        rule_set = rules(
            ValidationGroup(
                operator="AND", criteria=[criterion("deposit", 1000, enabled=False)]
            )
        )
        assert validator.validate(attributes, rule_set) is True

    def test_and_group_requires_all(self, validator, attributes):
        """One failing criterion fails an AND group."""
        rule_set = rules(
            ValidationGroup(
                operator="AND",
                criteria=[criterion("deposit", 30), criterion("bets", 20)],
            )
        )
        assert validator.validate(attributes, rule_set) is False

    def test_or_group_requires_one(self, validator, attributes):
        """One passing criterion is enough for an OR group."""
        rule_set = rules(
            ValidationGroup(
                operator="OR",
                criteria=[criterion("deposit", 1000), criterion("bets", 10)],
            )
        )
        assert validator.validate(attributes, rule_set) is True

    def test_threshold_is_inclusive(self, validator, attributes):
        """measured == threshold passes."""
        rule_set = rules(
            ValidationGroup(operator="AND", criteria=[criterion("days_active", 7)])
        )
        assert validator.validate(attributes, rule_set) is True

    def test_lowercase_operator(self, validator, attributes):
        """Operators are case-insensitive."""
        group = ValidationGroup(
            operator="and", criteria=[criterion("deposit", 30), criterion("bets", 20)]
        )
        assert group.operator == "AND"
        assert validator.validate(attributes, rules(group)) is False

    def test_unknown_operator_combines_as_or(self):
        """Anything but AND behaves like OR."""
        assert combine("XOR", [False, True]) is True
        assert combine("XOR", []) is False


class TestRuleSetSemantics:
    """Combination of groups."""

    def test_groups_combined_with_and(self, validator, attributes):
        """Top-level AND needs every group."""
        passing = ValidationGroup(operator="AND", criteria=[criterion("deposit", 30)])
        failing = ValidationGroup(operator="AND", criteria=[criterion("bets", 100)])
        result = validator.evaluate(
            attributes, rules(passing, failing, group_operator="AND")
        )
        assert result.approved is False
        assert [g.passed for g in result.groups] == [True, False]

    def test_groups_combined_with_or(self, validator, attributes):
        """Top-level OR needs one group."""
        passing = ValidationGroup(operator="AND", criteria=[criterion("deposit", 30)])
        failing = ValidationGroup(operator="AND", criteria=[criterion("bets", 100)])
        assert validator.validate(attributes, rules(failing, passing)) is True


class TestCriteria:
    """Single criterion evaluation."""

    def test_unknown_type_fails(self, validator, attributes):
        """Unknown criterion type never matches."""
        assert validator.check_criterion(criterion("vip_status", 0), attributes) is False

    def test_missing_measurement_fails(self, validator):
        """A criterion on an unmeasured attribute fails."""
        bare = CommissionAttributes(amount=Decimal("50"))
        assert validator.check_criterion(criterion("deposit", 0), bare) is False

    @pytest.mark.parametrize(
        "type_,threshold,expected",
        [
            ("deposit", 100, True),
            ("deposit", "100.01", False),
            ("bets", 12, True),
            ("bet_amount", "250.50", True),
            ("bet_amount", 251, False),
            ("days_active", 8, False),
        ],
    )
    def test_criterion_types(self, validator, attributes, type_, threshold, expected):
        """Each type compares its own attribute."""
        assert validator.check_criterion(criterion(type_, threshold), attributes) is expected
