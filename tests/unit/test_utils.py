"""
Unit tests for error classification, timeouts and the distributed lock.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from cpa_engine.utils.distributed_lock import DistributedLock, LockNotAcquiredError
from cpa_engine.utils.exceptions import (
    ConfigUnavailableError,
    HierarchyCycleError,
    InvalidEligibilityError,
    InvalidInputError,
    PersistenceError,
    StatisticsUpdateError,
    is_best_effort,
    is_retryable,
    must_raise,
)
from cpa_engine.utils.timeouts import backoff_delay, with_timeout


class TestExceptionClassification:
    """Handling categories."""

    def test_context_kept(self):
        error = InvalidInputError("bad amount", amount="-5")
        assert error.message == "bad amount"
        assert error.context == {"amount": "-5"}

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (PersistenceError("x"), True),
            (OperationalError("SELECT 1", {}, Exception("down")), True),
            (TimeoutError(), True),
            (InvalidInputError("x"), False),
            (InvalidEligibilityError("x"), False),
            (ValueError("x"), False),
        ],
    )
    def test_is_retryable(self, exc, expected):
        assert is_retryable(exc) is expected

    def test_best_effort(self):
        assert is_best_effort(StatisticsUpdateError("x"))
        assert is_best_effort(ConfigUnavailableError("x"))
        assert not is_best_effort(PersistenceError("x"))

    def test_must_raise(self):
        assert must_raise(HierarchyCycleError("x"))
        assert must_raise(InvalidEligibilityError("x"))
        assert not must_raise(StatisticsUpdateError("x"))


class TestTimeouts:
    @pytest.mark.parametrize(
        "attempt,expected",
        [(0, 5.0), (1, 10.0), (2, 20.0), (5, 160.0), (6, 300.0), (20, 300.0)],
    )
    def test_backoff_delay(self, attempt, expected):
        assert backoff_delay(attempt, 5.0, 300.0) == expected

    @pytest.mark.asyncio
    async def test_with_timeout_returns_result(self):
        async def quick():
            return 42

        assert await with_timeout(quick(), timeout=1) == 42

    @pytest.mark.asyncio
    async def test_with_timeout_raises(self):
        with pytest.raises(TimeoutError, match="slow op timed out"):
            await with_timeout(asyncio.sleep(10), timeout=0.01, operation_name="slow op")


class TestDistributedLock:
    """Redis lock with local fallback."""

    @pytest.mark.asyncio
    async def test_redis_lock_acquired_and_released(self):
        redis_client = AsyncMock()
        redis_client.set.return_value = True
        lock = DistributedLock(redis_client=redis_client)

        async with lock.lock("batch", timeout=30):
            pass

        set_call = redis_client.set.await_args
        assert set_call.args[0] == "lock:batch"
        assert set_call.kwargs == {"nx": True, "ex": 30}
        token = set_call.args[1]
        release = redis_client.eval.await_args.args
        assert release[1:] == (1, "lock:batch", token)

    @pytest.mark.asyncio
    async def test_redis_lock_held_elsewhere(self):
        redis_client = AsyncMock()
        redis_client.set.return_value = None
        lock = DistributedLock(redis_client=redis_client)

        with pytest.raises(LockNotAcquiredError):
            async with lock.lock("batch"):
                pass

        redis_client.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_local_lock_is_exclusive(self):
        key = f"test-{uuid.uuid4().hex}"
        lock = DistributedLock()

        async with lock.lock(key):
            with pytest.raises(LockNotAcquiredError):
                async with lock.lock(key):
                    pass

        async with lock.lock(key):
            pass

    @pytest.mark.asyncio
    async def test_redis_unavailable_falls_back_to_local(self):
        redis_client = AsyncMock()
        redis_client.set.side_effect = RedisConnectionError("down")
        key = f"test-{uuid.uuid4().hex}"
        lock = DistributedLock(redis_client=redis_client)

        async with lock.lock(key):
            with pytest.raises(LockNotAcquiredError):
                async with DistributedLock().lock(key):
                    pass
