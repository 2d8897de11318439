"""
CPA processing task.

Pulls pending CPAs from the operation database and distributes them.
Only one batch runs at a time across all workers (Redis lock).
"""

import asyncio

import dramatiq
import redis.asyncio as redis
from loguru import logger

from cpa_engine.config.constants import BATCH_LOCK_KEY, BATCH_LOCK_TIMEOUT
from cpa_engine.config.settings import settings
from cpa_engine.services.config_cache import ConfigCache
from cpa_engine.services.config_client import ConfigProviderClient
from cpa_engine.services.distribution.batch_processor import (
    NullEventSource,
    OperationDatabaseSource,
    PendingEventSource,
)
from cpa_engine.services.distribution_service import DistributionService
from cpa_engine.utils.distributed_lock import DistributedLock, LockNotAcquiredError
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import create_task_engine, create_task_session_maker


@dramatiq.actor(max_retries=3, time_limit=BATCH_LOCK_TIMEOUT * 1000)
def process_pending_cpas(limit: int | None = None) -> None:
    """
    Process one batch of pending CPAs.

    Args:
        limit: Max items (defaults to system_settings.batch_size)
    """
    logger.info("Starting pending CPA processing...")

    try:
        result = asyncio.run(_process_pending_cpas_async(limit))
    except LockNotAcquiredError:
        logger.info("CPA batch already running elsewhere, skipping")
        return

    if result is not None:
        logger.info(
            f"Pending CPA processing complete: {result['succeeded']} distributed, "
            f"{result['rejected']} rejected, {result['failed']} failed"
        )


async def _process_pending_cpas_async(limit: int | None) -> dict | None:
    """Async implementation of pending CPA processing."""
    redis_client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )
    lock = DistributedLock(redis_client=redis_client)

    engine = create_task_engine()
    event_source: PendingEventSource = (
        OperationDatabaseSource()
        if settings.operation_database_url
        else NullEventSource()
    )
    service = DistributionService(
        create_task_session_maker(engine),
        ConfigCache(ConfigProviderClient(), enable_push=False),
        event_source=event_source,
    )

    try:
        async with lock.lock(BATCH_LOCK_KEY, timeout=BATCH_LOCK_TIMEOUT):
            result = await service.process_pending_batch(limit)
            return result.to_dict()
    finally:
        await service.close()
        await engine.dispose()
        await redis_client.aclose()
