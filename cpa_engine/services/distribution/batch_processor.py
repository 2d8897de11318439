"""
Batch processor.

Feeds pending CPA events from an external source through the orchestrator.
Each item runs in isolation: a failing item is counted and the loop goes on.
A source record is marked processed only after its distribution completed.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from cpa_engine.config.constants import BATCH_VALIDATION_RULE_ID, ORIGINATOR_LEVEL
from cpa_engine.config.settings import settings
from cpa_engine.services.config_cache import ConfigCache
from cpa_engine.utils.exceptions import InvalidEligibilityError, is_retryable

SubmitCallable = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class PendingCpa:
    """CPA candidate read from the operation database."""

    user_id: int
    affiliate_id: int
    deposit_amount: Decimal | None = None
    bets_count: int | None = None
    total_bet_amount: Decimal | None = None
    days_active: int | None = None
    created_at: datetime | None = None

    @property
    def source_reference(self) -> str:
        return f"user:{self.user_id}"


class PendingEventSource(Protocol):
    """Where pending CPA events come from."""

    async def fetch_pending(self, limit: int) -> list[PendingCpa]:
        ...

    async def mark_processed(self, item: PendingCpa) -> None:
        ...


class NullEventSource:
    """Source with nothing pending (no operation database configured)."""

    async def fetch_pending(self, limit: int) -> list[PendingCpa]:
        return []

    async def mark_processed(self, item: PendingCpa) -> None:
        return None


class OperationDatabaseSource:
    """Pending CPAs from the operation database users table."""

    def __init__(
        self,
        database_url: str | None = None,
        min_deposit: float | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        """
        Initialize source.

        Args:
            database_url: Operation database URL (defaults to settings)
            min_deposit: Minimum deposit to qualify (defaults to settings)
            engine: Prebuilt engine (mostly for tests)
        """
        url = database_url or settings.operation_database_url
        if engine is None and not url:
            raise ValueError("operation_database_url is not configured")
        self.min_deposit = (
            min_deposit if min_deposit is not None else settings.operation_min_deposit
        )
        self.engine = engine or create_async_engine(
            url.replace("postgresql://", "postgresql+asyncpg://", 1),
            poolclass=NullPool,
        )

    async def fetch_pending(self, limit: int) -> list[PendingCpa]:
        query = text("""
            SELECT
                u.id AS user_id,
                u.affiliate_id,
                u.deposit_amount,
                u.bets_count,
                u.total_bet_amount,
                u.days_active,
                u.created_at
            FROM users u
            WHERE u.cpa_processed = false
              AND u.affiliate_id IS NOT NULL
              AND u.deposit_amount >= :min_deposit
            ORDER BY u.created_at ASC
            LIMIT :limit
        """)
        async with self.engine.connect() as conn:
            result = await conn.execute(
                query, {"min_deposit": self.min_deposit, "limit": limit}
            )
            return [
                PendingCpa(
                    user_id=row.user_id,
                    affiliate_id=row.affiliate_id,
                    deposit_amount=row.deposit_amount,
                    bets_count=row.bets_count,
                    total_bet_amount=row.total_bet_amount,
                    days_active=row.days_active,
                    created_at=row.created_at,
                )
                for row in result.all()
            ]

    async def mark_processed(self, item: PendingCpa) -> None:
        query = text("""
            UPDATE users
            SET cpa_processed = true, cpa_processed_at = CURRENT_TIMESTAMP
            WHERE id = :user_id
        """)
        async with self.engine.begin() as conn:
            await conn.execute(query, {"user_id": item.user_id})

    async def close(self) -> None:
        await self.engine.dispose()


@dataclass
class BatchResult:
    """Counters of one batch run."""

    fetched: int = 0
    succeeded: int = 0
    rejected: int = 0
    failed: int = 0
    total_distributed: Decimal = Decimal("0")
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "succeeded": self.succeeded,
            "rejected": self.rejected,
            "failed": self.failed,
            "total_distributed": str(self.total_distributed),
            "errors": self.errors,
        }


class BatchProcessor:
    """Runs pending CPAs through a submit callable."""

    def __init__(
        self,
        submit: SubmitCallable,
        config_cache: ConfigCache,
        source: PendingEventSource,
    ) -> None:
        """
        Initialize batch processor.

        Args:
            submit: Coroutine with the submit_commission_event signature
            config_cache: Configuration cache (batch size, base amount)
            source: Pending event source
        """
        self.submit = submit
        self.config_cache = config_cache
        self.source = source

    async def process_pending_batch(self, limit: int | None = None) -> BatchResult:
        """
        Process one batch of pending CPAs.

        Args:
            limit: Max items (defaults to system_settings.batch_size)

        Returns:
            BatchResult
        """
        result = BatchResult()

        if limit is None:
            system_settings = await self.config_cache.get_system_settings()
            limit = system_settings.batch_size

        payout_table = await self.config_cache.get_level_payout_table()
        base_amount = payout_table.amount_for(ORIGINATOR_LEVEL)
        if base_amount is None or base_amount <= 0:
            logger.error(
                "No level 1 amount configured, skipping CPA batch",
                extra={"payout_table": payout_table.to_payload()},
            )
            return result

        items = await self.source.fetch_pending(limit)
        result.fetched = len(items)
        if not items:
            logger.info("No pending CPAs found")
            return result

        logger.info(f"Processing {len(items)} pending CPAs")

        for item in items:
            await self._process_item(item, base_amount, result)

        logger.info(
            "CPA batch finished",
            extra=result.to_dict() | {"errors": len(result.errors)},
        )
        return result

    async def _process_item(
        self, item: PendingCpa, base_amount: Decimal, result: BatchResult
    ) -> None:
        attributes = {
            "amount": base_amount,
            "deposit_amount": item.deposit_amount,
            "bets_count": item.bets_count,
            "total_bet_amount": item.total_bet_amount,
            "days_active": item.days_active,
            "rule_id": BATCH_VALIDATION_RULE_ID,
            "criteria": {"source": "automatic_job"},
        }

        try:
            outcome = await self.submit(
                item.user_id,
                item.affiliate_id,
                attributes,
                source_reference=item.source_reference,
            )
        except InvalidEligibilityError:
            result.rejected += 1
            return
        except Exception as e:
            result.failed += 1
            result.errors.append(
                {
                    "user_id": item.user_id,
                    "affiliate_id": item.affiliate_id,
                    "error": str(e),
                    "retryable": is_retryable(e),
                }
            )
            logger.error(
                f"Failed to process CPA for user {item.user_id}",
                extra={"affiliate_id": item.affiliate_id, "error": str(e)},
            )
            return

        result.succeeded += 1
        result.total_distributed += outcome.total

        try:
            await self.source.mark_processed(item)
        except Exception as e:
            # Safe to pick up again: the event is idempotent on source_reference
            logger.error(
                f"Failed to mark CPA as processed for user {item.user_id}",
                extra={"error": str(e)},
            )
