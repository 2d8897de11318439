"""
Distribution service.

Operation surface of the engine. Every call opens its own session, so
concurrent callers never share a unit of work. The configuration cache is
owned by the service and passed explicitly to the components that need it.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cpa_engine.config.constants import (
    CPA_LEVEL_AMOUNTS_KEY,
    CPA_VALIDATION_RULES_KEY,
    MLM_SETTINGS_KEY,
)
from cpa_engine.config.settings import settings
from cpa_engine.repositories.commission_event_repository import (
    CommissionEventRepository,
)
from cpa_engine.schemas.commission import CommissionAttributes
from cpa_engine.services.base_service import log_operation
from cpa_engine.services.config_cache import ConfigCache
from cpa_engine.services.config_client import ConfigProviderClient
from cpa_engine.services.distribution.batch_processor import (
    BatchProcessor,
    BatchResult,
    NullEventSource,
    OperationDatabaseSource,
    PendingEventSource,
)
from cpa_engine.services.distribution.distribution_calculator import (
    DistributionCalculator,
)
from cpa_engine.services.distribution.distribution_orchestrator import (
    DistributionOrchestrator,
    DistributionOutcome,
)
from cpa_engine.services.distribution.eligibility_validator import (
    EligibilityValidator,
)
from cpa_engine.services.distribution.statistics_aggregator import (
    StatisticsAggregator,
    StatisticsPeriod,
    StatisticsView,
)
from cpa_engine.services.hierarchy.hierarchy_resolver import (
    HierarchyEntry,
    HierarchyResolver,
    UplineEntry,
    UpsertResult,
)
from cpa_engine.utils.exceptions import ConfigUnavailableError, InvalidInputError


class DistributionService:
    """Inbound operation surface of the distribution engine."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        config_cache: ConfigCache,
        validator: EligibilityValidator | None = None,
        calculator: DistributionCalculator | None = None,
        event_source: PendingEventSource | None = None,
    ) -> None:
        """
        Initialize distribution service.

        Args:
            session_maker: Session factory
            config_cache: Configuration cache owned by this service
            validator: Eligibility validator
            calculator: Distribution calculator
            event_source: Source of pending CPAs for batches
        """
        self.session_maker = session_maker
        self.config_cache = config_cache
        self.validator = validator or EligibilityValidator()
        self.calculator = calculator or DistributionCalculator()
        self.event_source = event_source or NullEventSource()
        self.batch_processor = BatchProcessor(
            submit=self.submit_commission_event,
            config_cache=config_cache,
            source=self.event_source,
        )
        self.logger = logger.bind(service=self.__class__.__name__)

    async def start(self) -> None:
        """Start background work (config push listener)."""
        await self.config_cache.start()

    async def close(self) -> None:
        """Release the config client and the event source."""
        await self.config_cache.stop()
        close_source = getattr(self.event_source, "close", None)
        if close_source is not None:
            await close_source()

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    @log_operation
    async def submit_commission_event(
        self,
        subject_user_id: int,
        originating_participant_id: int,
        attributes: CommissionAttributes | dict[str, Any],
        source_reference: str | None = None,
    ) -> DistributionOutcome:
        """
        Validate and distribute one CPA event.

        Returns:
            DistributionOutcome with the event, its distributions and total

        Raises:
            InvalidInputError, InvalidEligibilityError, HierarchyError,
            PersistenceError
        """
        async with self.session_maker() as session:
            orchestrator = DistributionOrchestrator(
                session,
                self.config_cache,
                validator=self.validator,
                calculator=self.calculator,
            )
            return await orchestrator.submit(
                subject_user_id,
                originating_participant_id,
                attributes,
                source_reference=source_reference,
            )

    @log_operation
    async def simulate_distribution(
        self, participant_id: int, cpa_amount: Decimal | float | str
    ) -> dict[str, Any]:
        """
        Compute what an event would distribute, without writing anything.

        Args:
            participant_id: Would-be originator
            cpa_amount: Base CPA amount

        Returns:
            Dict with upline, distributions, total and remaining amount
        """
        try:
            amount = Decimal(str(cpa_amount))
        except ArithmeticError as e:
            raise InvalidInputError(f"Invalid CPA amount: {cpa_amount}") from e
        if not amount.is_finite() or amount <= 0:
            raise InvalidInputError("CPA amount must be positive", cpa_amount=str(amount))

        payout_table = await self.config_cache.get_level_payout_table()
        hierarchy_settings = await self.config_cache.get_hierarchy_settings()

        async with self.session_maker() as session:
            upline = await HierarchyResolver(session).resolve_upline(
                participant_id, hierarchy_settings.max_hierarchy_levels
            )

        distributions = self.calculator.calculate(upline, payout_table, hierarchy_settings)
        total = self.calculator.total(distributions)

        return {
            "participant_id": participant_id,
            "cpa_amount": amount,
            "upline": [
                {"participant_id": e.participant_id, "level": e.level} for e in upline
            ],
            "distributions": [
                {
                    "participant_id": d.participant_id,
                    "level": d.level,
                    "amount": d.amount,
                    "currency": d.currency,
                }
                for d in distributions
            ],
            "total": total,
            "remaining_amount": amount - total,
        }

    async def process_pending_batch(self, limit: int | None = None) -> BatchResult:
        """Process one batch from the configured event source."""
        return await self.batch_processor.process_pending_batch(limit)

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    async def _default_max_levels(self, max_levels: int | None) -> int:
        if max_levels is not None:
            if max_levels < 1:
                raise InvalidInputError("max_levels must be >= 1", max_levels=max_levels)
            return max_levels
        hierarchy_settings = await self.config_cache.get_hierarchy_settings()
        return hierarchy_settings.max_hierarchy_levels

    async def get_upline(
        self, participant_id: int, max_levels: int | None = None
    ) -> list[UplineEntry]:
        """Active ancestors of a participant, nearest first."""
        max_levels = await self._default_max_levels(max_levels)
        async with self.session_maker() as session:
            return await HierarchyResolver(session).resolve_upline(
                participant_id, max_levels
            )

    async def get_hierarchy(
        self, participant_id: int, max_levels: int | None = None
    ) -> list[HierarchyEntry]:
        """Active downline of a participant, the participant first."""
        max_levels = await self._default_max_levels(max_levels)
        async with self.session_maker() as session:
            return await HierarchyResolver(session).resolve_descendants(
                participant_id, max_levels
            )

    @log_operation
    async def upsert_participant(
        self, participant_id: int, parent_id: int | None = None
    ) -> UpsertResult:
        """Insert a participant or move it under a new parent."""
        async with self.session_maker() as session:
            return await HierarchyResolver(session).upsert(participant_id, parent_id)

    @log_operation
    async def set_participant_active(self, participant_id: int, active: bool) -> None:
        """Deactivate or reactivate a participant."""
        async with self.session_maker() as session:
            await HierarchyResolver(session).set_active(participant_id, active)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_statistics(
        self,
        participant_id: int,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> StatisticsView | None:
        """
        Stored totals of a participant.

        Args:
            participant_id: Participant ID
            period_start: First day (defaults to the current month)
            period_end: Last day (defaults to the current month)

        Returns:
            StatisticsView or None if nothing was recorded
        """
        if (period_start is None) != (period_end is None):
            raise InvalidInputError("period_start and period_end go together")
        if period_start is None:
            period = StatisticsPeriod.current_month()
            period_start, period_end = period.start, period.end
        if period_start > period_end:
            raise InvalidInputError(
                "period_start is after period_end",
                period_start=period_start.isoformat(),
                period_end=period_end.isoformat(),
            )

        async with self.session_maker() as session:
            return await StatisticsAggregator(session).get_statistics(
                participant_id, period_start, period_end
            )

    async def get_participant_events(
        self,
        participant_id: int,
        status: str | None = None,
        level: int | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """CPA events that credited a participant, newest first."""
        async with self.session_maker() as session:
            events = await CommissionEventRepository(session).find_for_participant(
                participant_id,
                status=status,
                level=level,
                date_from=date_from,
                date_to=date_to,
                limit=limit,
            )
            return [event.to_dict() for event in events]

    async def get_current_config(self) -> dict[str, Any]:
        """Snapshot of the typed configuration in use."""
        payout_table = await self.config_cache.get_level_payout_table()
        hierarchy_settings = await self.config_cache.get_hierarchy_settings()
        rules = await self.config_cache.get_validation_rules()
        return {
            CPA_LEVEL_AMOUNTS_KEY: payout_table.to_payload(),
            MLM_SETTINGS_KEY: hierarchy_settings.model_dump(mode="json"),
            CPA_VALIDATION_RULES_KEY: rules.model_dump(mode="json"),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def health_check(self) -> dict[str, Any]:
        """
        Check database and config service.

        Returns:
            {"status": "healthy" | "unhealthy", "database": ..., "config_service": ...}
        """
        database_ok = True
        try:
            async with self.session_maker() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            self.logger.error("Database health check failed", extra={"error": str(e)})
            database_ok = False

        try:
            config_health = await self.config_cache.client.health_check()
        except ConfigUnavailableError as e:
            config_health = {"ok": False, "error": e.message}

        return {
            # The config service is optional: the cache degrades to defaults
            "status": "healthy" if database_ok else "unhealthy",
            "database": "connected" if database_ok else "disconnected",
            "config_service": config_health,
            "config_push_active": self.config_cache.push_active,
            "timestamp": datetime.now(UTC).isoformat(),
        }


def create_distribution_service() -> DistributionService:
    """Build a service wired to the configured database and config service."""
    from cpa_engine.config.database import async_session_maker

    config_cache = ConfigCache(ConfigProviderClient())
    event_source: PendingEventSource = (
        OperationDatabaseSource()
        if settings.operation_database_url
        else NullEventSource()
    )
    return DistributionService(
        async_session_maker, config_cache, event_source=event_source
    )
