"""Retry with exponential backoff for client calls."""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> T:
    """Await `operation()`, retrying on any exception.

    Waits `base_delay * 2**attempt` seconds between attempts, so the operation
    runs at most `max_retries + 1` times. The last exception is re-raised
    unchanged. Callers decide beforehand whether an error is worth retrying.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries:
                raise
            wait_time = base_delay * 2**attempt
            logger.debug(
                "client.retry",
                attempt=attempt + 1,
                wait_seconds=wait_time,
                error_type=type(e).__name__,
            )
            await asyncio.sleep(wait_time)
            attempt += 1
