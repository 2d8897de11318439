"""
Unit tests for the distribution orchestrator.

Repositories, hierarchy and statistics are mocked; the validator and the
calculator are real.
"""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from cpa_engine.models.enums import OperationStatus
from cpa_engine.schemas.config import (
    ValidationCriterion,
    ValidationGroup,
    ValidationRuleSet,
)
from cpa_engine.services.distribution.distribution_orchestrator import (
    DistributionOrchestrator,
    DistributionStage,
)
from cpa_engine.services.distribution.eligibility_validator import (
    EligibilityValidator,
)
from cpa_engine.services.hierarchy.hierarchy_resolver import UplineEntry
from cpa_engine.utils.exceptions import (
    InvalidEligibilityError,
    InvalidInputError,
    ParticipantNotFoundError,
    PersistenceError,
    StatisticsUpdateError,
)

ATTRIBUTES = {"amount": "50.00", "depositAmount": "100", "betsCount": 12}


def stored_record(participant_id, level, amount):
    record = MagicMock()
    record.participant_id = participant_id
    record.level = level
    record.distributed_amount = Decimal(amount)
    record.to_dict.return_value = {"participant_id": participant_id, "level": level}
    return record


@pytest.fixture
def orchestrator(mock_session, config_cache):
    service = DistributionOrchestrator(
        mock_session,
        config_cache,
        validator=EligibilityValidator(fail_closed=False),
        operation_timeout=5,
    )
    service.hierarchy = AsyncMock()
    service.hierarchy.resolve_upline.return_value = [
        UplineEntry(participant_id=456, level=2),
        UplineEntry(participant_id=789, level=3),
    ]
    service.event_repo = AsyncMock()
    service.event_repo.create_event.return_value = SimpleNamespace(
        id=1, status="PENDING", distributed_at=None
    )
    service.distribution_repo = AsyncMock()
    service.distribution_repo.get_by_event.return_value = [
        stored_record(456, 2, "20.00"),
        stored_record(789, 3, "5.00"),
    ]
    service.statistics = AsyncMock()
    service.log_repo = AsyncMock()
    return service


def audit_statuses(orchestrator):
    return [c.kwargs["status"] for c in orchestrator.log_repo.log_operation.await_args_list]


class TestSubmit:
    """Happy path."""

    @pytest.mark.asyncio
    async def test_distributes_to_upline(self, orchestrator, mock_session):
        outcome = await orchestrator.submit(123, 100, ATTRIBUTES, source_reference="user:123")

        assert outcome.stage == DistributionStage.DONE
        assert outcome.total == Decimal("25.00")
        assert outcome.warnings == []
        assert outcome.event.status == "DISTRIBUTED"
        assert outcome.event.distributed_at is not None

        orchestrator.hierarchy.resolve_upline.assert_awaited_once_with(100, 5)
        rows = orchestrator.distribution_repo.insert_many.await_args.args[0]
        assert [(r["participant_id"], r["level"], r["distributed_amount"]) for r in rows] == [
            (456, 2, Decimal("20.00")),
            (789, 3, Decimal("5.00")),
        ]
        assert rows[0]["transaction_id"] == "CPA_1_456"
        assert all(r["statistics_applied"] is False for r in rows)

        event_kwargs = orchestrator.event_repo.create_event.await_args.kwargs
        assert event_kwargs["source_reference"] == "user:123"
        assert event_kwargs["base_amount"] == Decimal("50.00")

        orchestrator.statistics.apply.assert_awaited_once()
        assert audit_statuses(orchestrator) == [OperationStatus.SUCCESS]
        mock_session.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_root_originator_distributes_nothing(self, orchestrator):
        orchestrator.hierarchy.resolve_upline.return_value = []
        orchestrator.distribution_repo.get_by_event.return_value = []

        outcome = await orchestrator.submit(123, 100, ATTRIBUTES)

        assert outcome.total == Decimal("0")
        assert outcome.distributions == []


class TestRejection:
    """Validation outcomes."""

    @pytest.mark.asyncio
    async def test_rejected_event_audited_as_warning(self, orchestrator, config_cache):
        config_cache.validation_rules = ValidationRuleSet(
            groups=[
                ValidationGroup(
                    operator="AND",
                    criteria=[ValidationCriterion(type="deposit", threshold=Decimal("1000"))],
                )
            ]
        )

        with pytest.raises(InvalidEligibilityError):
            await orchestrator.submit(123, 100, ATTRIBUTES)

        assert audit_statuses(orchestrator) == [OperationStatus.WARNING]
        orchestrator.hierarchy.resolve_upline.assert_not_awaited()
        orchestrator.event_repo.create_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_attributes(self, orchestrator):
        with pytest.raises(InvalidInputError):
            await orchestrator.submit(123, 100, {"amount": "-5"})

        orchestrator.log_repo.log_operation.assert_not_awaited()


class TestFailures:
    """Errors and best-effort side effects."""

    @pytest.mark.asyncio
    async def test_statistics_failure_becomes_warning(self, orchestrator):
        orchestrator.statistics.apply.side_effect = StatisticsUpdateError("boom")

        outcome = await orchestrator.submit(123, 100, ATTRIBUTES)

        assert outcome.total == Decimal("25.00")
        assert outcome.warnings == ["statistics not updated: boom"]
        assert audit_statuses(orchestrator) == [OperationStatus.SUCCESS]

    @pytest.mark.asyncio
    async def test_audit_failure_becomes_warning(self, orchestrator):
        orchestrator.log_repo.log_operation.side_effect = RuntimeError("audit down")

        outcome = await orchestrator.submit(123, 100, ATTRIBUTES)

        assert outcome.stage == DistributionStage.DONE
        assert outcome.warnings == ["audit entry not written"]

    @pytest.mark.asyncio
    async def test_persistence_failure_is_retryable(self, orchestrator, mock_session):
        orchestrator.distribution_repo.insert_many.side_effect = SQLAlchemyError("db down")

        with pytest.raises(PersistenceError) as exc_info:
            await orchestrator.submit(123, 100, ATTRIBUTES)

        assert exc_info.value.retryable is True
        mock_session.rollback.assert_awaited()
        assert audit_statuses(orchestrator) == [OperationStatus.ERROR]
        orchestrator.statistics.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_persistence_error(self, orchestrator, mock_session):
        orchestrator.distribution_repo.insert_many.side_effect = SQLAlchemyError("db down")
        mock_session.rollback.side_effect = SQLAlchemyError("connection closed")

        with pytest.raises(PersistenceError):
            await orchestrator.submit(123, 100, ATTRIBUTES)

    @pytest.mark.asyncio
    async def test_upline_database_error_is_retryable(self, orchestrator, mock_session):
        """Rollback happens before the failure is audited."""
        calls = []
        mock_session.rollback.side_effect = lambda: calls.append("rollback")
        orchestrator.log_repo.log_operation.side_effect = (
            lambda **kwargs: calls.append("audit")
        )
        orchestrator.hierarchy.resolve_upline.side_effect = OperationalError(
            "SELECT", {}, Exception("server closed the connection")
        )

        with pytest.raises(PersistenceError) as exc_info:
            await orchestrator.submit(123, 100, ATTRIBUTES)

        assert exc_info.value.retryable is True
        assert calls[:2] == ["rollback", "audit"]
        assert audit_statuses(orchestrator) == [OperationStatus.ERROR]
        orchestrator.event_repo.create_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upline_timeout_is_retryable(self, orchestrator, mock_session):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        orchestrator.operation_timeout = 0.01
        orchestrator.hierarchy.resolve_upline.side_effect = hang

        with pytest.raises(PersistenceError) as exc_info:
            await orchestrator.submit(123, 100, ATTRIBUTES)

        assert isinstance(exc_info.value.__cause__, TimeoutError)
        mock_session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_unknown_originator(self, orchestrator):
        orchestrator.hierarchy.resolve_upline.side_effect = ParticipantNotFoundError("missing")

        with pytest.raises(ParticipantNotFoundError):
            await orchestrator.submit(123, 100, ATTRIBUTES)

        assert audit_statuses(orchestrator) == [OperationStatus.ERROR]
        orchestrator.event_repo.create_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_mask_error(self, orchestrator):
        orchestrator.hierarchy.resolve_upline.side_effect = ParticipantNotFoundError("missing")
        orchestrator.log_repo.log_operation.side_effect = RuntimeError("audit down")

        with pytest.raises(ParticipantNotFoundError):
            await orchestrator.submit(123, 100, ATTRIBUTES)
