"""
Distribution orchestrator.

Runs one CPA event through the pipeline:

    RECEIVED -> VALIDATED -> UPLINE_RESOLVED -> CALCULATED -> PERSISTED
             -> STATISTICS_UPDATED -> AUDITED -> DONE

with REJECTED when the rule set refuses the event and FAILED on any other
unrecovered error. The event and its distributions are written in one
transaction; statistics and the audit entry are best-effort and only ever
add warnings to a successful outcome.
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.config.constants import (
    ENTITY_CPA,
    OPERATION_CPA_DISTRIBUTION,
    ORIGINATOR_LEVEL,
)
from cpa_engine.config.settings import settings
from cpa_engine.models.commission_event import CommissionEvent
from cpa_engine.models.distribution_record import DistributionRecord
from cpa_engine.models.enums import (
    CommissionEventStatus,
    DistributionStatus,
    OperationStatus,
)
from cpa_engine.repositories.commission_event_repository import (
    CommissionEventRepository,
)
from cpa_engine.repositories.distribution_repository import DistributionRepository
from cpa_engine.repositories.operation_log_repository import OperationLogRepository
from cpa_engine.schemas.commission import CommissionAttributes
from cpa_engine.services.base_service import BaseService
from cpa_engine.services.config_cache import ConfigCache
from cpa_engine.services.distribution.distribution_calculator import (
    DistributionCalculator,
    PendingDistribution,
    transaction_id,
)
from cpa_engine.services.distribution.eligibility_validator import (
    EligibilityValidator,
)
from cpa_engine.services.distribution.statistics_aggregator import (
    StatisticsAggregator,
)
from cpa_engine.services.hierarchy.hierarchy_resolver import (
    HierarchyResolver,
    UplineEntry,
)
from cpa_engine.utils.exceptions import (
    EngineError,
    InvalidEligibilityError,
    InvalidInputError,
    PersistenceError,
    is_best_effort,
    is_retryable,
    must_raise,
)
from cpa_engine.utils.timeouts import with_timeout


class DistributionStage(str, Enum):
    """Pipeline stage reached by a request."""

    RECEIVED = "received"
    VALIDATED = "validated"
    UPLINE_RESOLVED = "upline_resolved"
    CALCULATED = "calculated"
    PERSISTED = "persisted"
    STATISTICS_UPDATED = "statistics_updated"
    AUDITED = "audited"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class DistributionOutcome:
    """Result of a successful submission."""

    event: CommissionEvent
    distributions: list[DistributionRecord]
    total: Decimal
    warnings: list[str] = field(default_factory=list)
    stage: DistributionStage = DistributionStage.DONE


class DistributionOrchestrator(BaseService):
    """Validate, resolve, calculate, persist, aggregate and audit one event."""

    def __init__(
        self,
        session: AsyncSession,
        config_cache: ConfigCache,
        validator: EligibilityValidator | None = None,
        calculator: DistributionCalculator | None = None,
        operation_timeout: float | None = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            session: Async database session
            config_cache: Configuration cache
            validator: Eligibility validator
            calculator: Distribution calculator
            operation_timeout: Bound on the persistence step (seconds)
        """
        super().__init__(session)
        self.config_cache = config_cache
        self.validator = validator or EligibilityValidator()
        self.calculator = calculator or DistributionCalculator()
        self.operation_timeout = (
            operation_timeout or settings.database_operation_timeout
        )
        self.hierarchy = HierarchyResolver(session)
        self.statistics = StatisticsAggregator(session)
        self.event_repo = CommissionEventRepository(session)
        self.distribution_repo = DistributionRepository(session)
        self.log_repo = OperationLogRepository(session)

    async def submit(
        self,
        subject_user_id: int,
        originating_participant_id: int,
        attributes: CommissionAttributes | dict[str, Any],
        source_reference: str | None = None,
    ) -> DistributionOutcome:
        """
        Process one CPA event.

        Args:
            subject_user_id: User whose activity generated the event
            originating_participant_id: Participant credited at level 1
            attributes: Measured attributes and base amount
            source_reference: Idempotency key of the source record

        Returns:
            DistributionOutcome

        Raises:
            InvalidInputError: Attributes failed validation
            InvalidEligibilityError: Rule set rejected the event
            HierarchyError: Originator is not in the hierarchy
            PersistenceError: Write failed or timed out (retryable)
        """
        started = time.perf_counter()
        stage = DistributionStage.RECEIVED
        attrs = self._parse_attributes(attributes)

        operation_data = {
            "subject_user_id": subject_user_id,
            "originating_participant_id": originating_participant_id,
            "source_reference": source_reference,
            "attributes": attrs.model_dump(mode="json"),
        }
        entity_id = source_reference or str(subject_user_id)

        payout_table = await self.config_cache.get_level_payout_table()
        hierarchy_settings = await self.config_cache.get_hierarchy_settings()
        rules = await self.config_cache.get_validation_rules()

        eligibility = self.validator.evaluate(attrs, rules)
        if not eligibility.approved:
            self.logger.info(
                "CPA event rejected by validation rules",
                extra={
                    "subject_user_id": subject_user_id,
                    "participant_id": originating_participant_id,
                    "reason": eligibility.reason,
                },
            )
            await self._audit(
                OperationStatus.WARNING,
                entity_id,
                operation_data,
                started,
                result_data={"stage": DistributionStage.REJECTED.value},
                error_message="Event does not meet the validation criteria",
            )
            raise InvalidEligibilityError(
                "Event does not meet the validation criteria",
                subject_user_id=subject_user_id,
                participant_id=originating_participant_id,
            )
        stage = DistributionStage.VALIDATED

        try:
            upline = await self._resolve_upline(
                subject_user_id,
                originating_participant_id,
                hierarchy_settings.max_hierarchy_levels,
            )
            stage = DistributionStage.UPLINE_RESOLVED

            pending = self.calculator.calculate(upline, payout_table, hierarchy_settings)
            stage = DistributionStage.CALCULATED

            event, records = await self._persist(
                subject_user_id,
                originating_participant_id,
                attrs,
                pending,
                source_reference,
            )
            stage = DistributionStage.PERSISTED
        except Exception as e:
            log = self.logger.warning if must_raise(e) else self.logger.error
            log(
                "CPA distribution failed",
                extra={
                    "subject_user_id": subject_user_id,
                    "participant_id": originating_participant_id,
                    "stage": stage.value,
                    "retryable": is_retryable(e),
                    "error": str(e),
                },
            )
            await self._audit(
                OperationStatus.ERROR,
                entity_id,
                operation_data,
                started,
                result_data={
                    "stage": DistributionStage.FAILED.value,
                    "last_stage": stage.value,
                },
                error_message=str(e),
            )
            raise

        warnings: list[str] = []
        total = sum((r.distributed_amount for r in records), Decimal("0"))

        try:
            await self.statistics.apply(records)
            stage = DistributionStage.STATISTICS_UPDATED
        except EngineError as e:
            if not is_best_effort(e):
                raise
            self.logger.warning(
                "Statistics update failed, distributions are kept",
                extra={"event_id": event.id, "error": str(e)},
            )
            warnings.append(f"statistics not updated: {e.message}")

        audited = await self._audit(
            OperationStatus.SUCCESS,
            entity_id,
            operation_data,
            started,
            result_data={
                "event_id": event.id,
                "distributions": [r.to_dict() for r in records],
                "total_distributed": str(total),
            },
        )
        if audited:
            stage = DistributionStage.AUDITED
        else:
            warnings.append("audit entry not written")

        self.logger.info(
            "CPA distribution completed",
            extra={
                "event_id": event.id,
                "subject_user_id": subject_user_id,
                "participant_id": originating_participant_id,
                "distributions": len(records),
                "total": str(total),
                "warnings": len(warnings),
            },
        )

        return DistributionOutcome(
            event=event,
            distributions=records,
            total=total,
            warnings=warnings,
            stage=DistributionStage.DONE,
        )

    @staticmethod
    def _parse_attributes(
        attributes: CommissionAttributes | dict[str, Any],
    ) -> CommissionAttributes:
        if isinstance(attributes, CommissionAttributes):
            return attributes
        try:
            return CommissionAttributes.model_validate(attributes)
        except ValidationError as e:
            raise InvalidInputError(
                f"Invalid CPA attributes: {e.error_count()} error(s)",
                errors=e.errors(include_url=False),
            ) from e

    async def _resolve_upline(
        self,
        subject_user_id: int,
        originating_participant_id: int,
        max_levels: int,
    ) -> list[UplineEntry]:
        """Bounded upline lookup. Database failures become PersistenceError."""
        try:
            return await with_timeout(
                self.hierarchy.resolve_upline(originating_participant_id, max_levels),
                timeout=self.operation_timeout,
                operation_name="CPA upline resolution",
            )
        except (SQLAlchemyError, TimeoutError) as e:
            await self._safe_rollback()
            raise PersistenceError(
                f"Failed to resolve upline: {e}",
                subject_user_id=subject_user_id,
                participant_id=originating_participant_id,
            ) from e

    async def _safe_rollback(self) -> None:
        try:
            await self.rollback()
        except SQLAlchemyError as e:
            self.logger.error("Rollback failed", extra={"error": str(e)})

    async def _persist(
        self,
        subject_user_id: int,
        originating_participant_id: int,
        attrs: CommissionAttributes,
        pending: list[PendingDistribution],
        source_reference: str | None,
    ) -> tuple[CommissionEvent, list[DistributionRecord]]:
        """Write event and distributions as one bounded transaction."""
        try:
            return await with_timeout(
                self._write(
                    subject_user_id,
                    originating_participant_id,
                    attrs,
                    pending,
                    source_reference,
                ),
                timeout=self.operation_timeout,
                operation_name="CPA distribution persistence",
            )
        except (SQLAlchemyError, TimeoutError) as e:
            await self._safe_rollback()
            raise PersistenceError(
                f"Failed to persist CPA distribution: {e}",
                subject_user_id=subject_user_id,
                participant_id=originating_participant_id,
            ) from e

    async def _write(
        self,
        subject_user_id: int,
        originating_participant_id: int,
        attrs: CommissionAttributes,
        pending: list[PendingDistribution],
        source_reference: str | None,
    ) -> tuple[CommissionEvent, list[DistributionRecord]]:
        event = await self.event_repo.create_event(
            subject_user_id=subject_user_id,
            originating_participant_id=originating_participant_id,
            originating_level=ORIGINATOR_LEVEL,
            base_amount=attrs.amount,
            deposit_amount=attrs.deposit_amount,
            bets_count=attrs.bets_count,
            total_bet_amount=attrs.total_bet_amount,
            days_active=attrs.days_active,
            validation_rule_id=attrs.rule_id,
            validation_criteria=attrs.model_dump(mode="json")["criteria"],
            source_reference=source_reference,
            status=CommissionEventStatus.PENDING.value,
        )

        now = datetime.now(UTC)
        await self.distribution_repo.insert_many(
            [
                {
                    "event_id": event.id,
                    "subject_user_id": subject_user_id,
                    "participant_id": d.participant_id,
                    "level": d.level,
                    "original_amount": d.amount,
                    "distributed_amount": d.amount,
                    "currency": d.currency,
                    "transaction_id": transaction_id(event.id, d.participant_id),
                    "status": DistributionStatus.COMPLETED.value,
                    "statistics_applied": False,
                    "distribution_date": now,
                }
                for d in pending
            ]
        )

        event.status = CommissionEventStatus.DISTRIBUTED.value
        event.distributed_at = event.distributed_at or now
        await self.session.flush()
        await self.commit()

        records = await self.distribution_repo.get_by_event(event.id)
        return event, records

    async def _audit(
        self,
        status: OperationStatus,
        entity_id: str,
        operation_data: dict[str, Any],
        started: float,
        result_data: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Write an audit entry. Never raises."""
        try:
            await self.log_repo.log_operation(
                operation_type=OPERATION_CPA_DISTRIBUTION,
                entity_type=ENTITY_CPA,
                entity_id=entity_id,
                status=status,
                operation_data=operation_data,
                result_data=result_data,
                error_message=error_message,
                execution_time_ms=int((time.perf_counter() - started) * 1000),
            )
            await self.commit()
            return True
        except Exception as e:
            self.logger.error(
                "Failed to write audit entry",
                extra={"entity_id": entity_id, "status": status.value, "error": str(e)},
            )
            await self._safe_rollback()
            return False
