"""Bounded retry policy for fallible async operations."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Maximum attempts with a linearly increasing delay between them."""

    max_attempts: int = 3
    base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms cannot be negative")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return attempt * self.base_delay_ms / 1000


class RetryExhaustedError(Exception):
    """Every attempt failed; ``last_error`` holds the final failure."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(str(last_error))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or the policy is exhausted.

    Only exceptions matching ``retry_on`` are retried; anything else
    propagates immediately.

    Args:
        operation: Zero-argument coroutine factory, invoked once per attempt
        policy: Attempt budget and backoff
        retry_on: Exception types that count as a failed attempt
        sleep: Awaitable sleep, injectable for tests
        label: Name used in log events

    Returns:
        The first successful result

    Raises:
        RetryExhaustedError: After ``policy.max_attempts`` consecutive failures
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            logger.warning(
                "retry_attempt_failed",
                operation=label,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                error=str(e),
            )
            if attempt < policy.max_attempts:
                await sleep(policy.delay_after(attempt))

    assert last_error is not None
    raise RetryExhaustedError(policy.max_attempts, last_error)
