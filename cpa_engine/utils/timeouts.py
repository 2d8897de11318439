"""
Timeout and backoff helpers.

Every call that leaves the process (config service, database) goes through
a bounded timeout so that no operation can hang its caller.
"""

import asyncio
from typing import Any

from loguru import logger


async def with_timeout(
    coro: Any,
    timeout: float,
    operation_name: str = "operation",
) -> Any:
    """
    Execute async coroutine with timeout.

    Args:
        coro: Coroutine to execute
        timeout: Timeout in seconds
        operation_name: Operation name for logging

    Returns:
        Result of the coroutine

    Raises:
        TimeoutError: If operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        error_msg = f"{operation_name} timed out after {timeout}s"
        logger.error(error_msg)
        raise TimeoutError(error_msg) from e


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """
    Capped exponential backoff.

    Args:
        attempt: Zero-based attempt number
        base: Delay for the first attempt (seconds)
        cap: Maximum delay (seconds)

    Returns:
        Delay in seconds: base, 2*base, 4*base, ... never above cap
    """
    return min(base * (2 ** attempt), cap)
