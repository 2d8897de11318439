"""
Eligibility validator.

Evaluates a two-level boolean rule tree against the measured attributes of a
CPA event. Pure: no I/O, no state besides the fail-closed policy.

Semantics:
- a criterion passes when measured value >= threshold; an unknown type or
  a missing measurement fails it
- disabled criteria are skipped, not counted as failed
- AND over zero criteria is true, OR over zero criteria is false
- any operator other than AND combines as OR
- an empty rule set allows the event unless fail_closed is set
"""

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from cpa_engine.config.settings import settings
from cpa_engine.schemas.commission import CommissionAttributes
from cpa_engine.schemas.config import AND, ValidationCriterion, ValidationRuleSet


@dataclass(frozen=True)
class GroupResult:
    """Evaluation of one rule group."""

    operator: str
    passed: bool
    evaluated: int


@dataclass(frozen=True)
class EligibilityResult:
    """Evaluation of a whole rule set."""

    approved: bool
    groups: tuple[GroupResult, ...] = ()
    reason: str | None = None


def combine(operator: str, results: Iterable[bool]) -> bool:
    """Combine boolean results with AND (all) or OR (any)."""
    if operator.upper() == AND:
        return all(results)
    return any(results)


class EligibilityValidator:
    """Rule-set evaluator."""

    def __init__(self, fail_closed: bool | None = None) -> None:
        """
        Initialize validator.

        Args:
            fail_closed: Reject events when no rule set is configured
                (defaults to settings.validation_fail_closed)
        """
        self.fail_closed = (
            fail_closed if fail_closed is not None else settings.validation_fail_closed
        )

    def validate(
        self,
        attributes: CommissionAttributes,
        rules: ValidationRuleSet | None,
    ) -> bool:
        """Return True if the event is eligible."""
        return self.evaluate(attributes, rules).approved

    def evaluate(
        self,
        attributes: CommissionAttributes,
        rules: ValidationRuleSet | None,
    ) -> EligibilityResult:
        """
        Evaluate the rule set with per-group detail.

        Args:
            attributes: Measured attributes of the event
            rules: Rule set (None = not configured)

        Returns:
            EligibilityResult
        """
        if rules is None or rules.is_empty:
            if self.fail_closed:
                return EligibilityResult(approved=False, reason="no rules configured")
            return EligibilityResult(approved=True, reason="no rules configured")

        group_results = []
        for group in rules.groups:
            outcomes = [
                self.check_criterion(criterion, attributes)
                for criterion in group.criteria
                if criterion.enabled
            ]
            group_results.append(
                GroupResult(
                    operator=group.operator,
                    passed=combine(group.operator, outcomes),
                    evaluated=len(outcomes),
                )
            )

        approved = combine(rules.group_operator, (g.passed for g in group_results))

        logger.debug(
            "Eligibility evaluated",
            extra={
                "approved": approved,
                "group_operator": rules.group_operator,
                "groups": [g.passed for g in group_results],
            },
        )
        return EligibilityResult(approved=approved, groups=tuple(group_results))

    @staticmethod
    def check_criterion(
        criterion: ValidationCriterion, attributes: CommissionAttributes
    ) -> bool:
        measured = attributes.measured(criterion.type)
        if measured is None:
            return False
        return measured >= criterion.threshold
