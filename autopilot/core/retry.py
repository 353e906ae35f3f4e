"""Retry and backoff utilities for resilient writes.

Provider calls are never retried inside the engine (one run row per attempt).
This helper exists for the store's finalize writes, where a transient database
failure would otherwise leave a run stuck in the running state.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from autopilot.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 5.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute async function with exponential backoff retry.

    Each retry waits for: min(backoff_base * 2^attempt, backoff_max) seconds,
    with random jitter applied if enabled.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration, uses defaults if not provided
        operation_name: Name for logging purposes

    Returns:
        Result of fn()

    Raises:
        Exception: The last exception if all retries are exhausted, or
            immediately for exceptions outside retryable_exceptions

    Example:
        ```python
        config = RetryConfig(max_attempts=3, retryable_exceptions=(PersistenceError,))
        run = await retry_with_backoff(
            lambda: write_finalize(run_id),
            config=config,
            operation_name=f"finalize:{run_id}",
        )
        ```
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            return await fn()
        except config.retryable_exceptions as e:
            if attempt + 1 == attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=attempts,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            delay = min(config.backoff_base * (2**attempt), config.backoff_max)
            if config.jitter:
                delay *= 0.5 + random.random()

            logger.bind(
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected state in retry_with_backoff")
