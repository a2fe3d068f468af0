"""
Retry Utilities
Bounded exponential backoff for transient store lookups.

Provider calls are never routed through here: an outbound call is not
idempotent and retrying could place a duplicate call.
"""

import asyncio
from typing import Awaitable, Callable, Iterator, Optional, Tuple, Type, TypeVar

from call_orchestrator.core.logging import get_logger
from call_orchestrator.core.config import settings

logger = get_logger(__name__)

T = TypeVar("T")


class RetryError(Exception):
    """Raised when every attempt failed"""
    def __init__(self, message: str, attempts: int, last_exception: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


def backoff_delays(attempts: int, initial: float, multiplier: float = 2.0) -> Iterator[float]:
    """Sleep before each attempt after the first: initial, initial*m, ..."""
    current = initial
    for _ in range(attempts - 1):
        yield current
        current *= multiplier


async def retry_async_operation(
    operation: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: str = "operation"
) -> T:
    """
    Await operation until it succeeds or the attempts run out

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Total attempts, including the first
            (default CREDENTIAL_FETCH_MAX_ATTEMPTS)
        delay: Sleep before the second attempt, doubled after that
            (default CREDENTIAL_FETCH_RETRY_DELAY)
        exceptions: Transient errors; anything else propagates at once
        operation_name: Used in log lines

    Raises:
        RetryError: every attempt raised one of exceptions
    """
    attempts = max_retries if max_retries is not None else settings.credential_fetch_max_attempts
    initial = delay if delay is not None else settings.credential_fetch_retry_delay
    pauses = backoff_delays(attempts, initial, backoff_multiplier)

    last_exception: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except exceptions as e:
            last_exception = e
            logger.warning(f"{operation_name} failed (attempt {attempt}/{attempts}): {e}")

        pause = next(pauses, None)
        if pause is None:
            break
        await asyncio.sleep(pause)

    logger.error(f"Giving up on {operation_name} after {attempts} attempts")
    raise RetryError(
        f"{operation_name} failed after {attempts} attempts",
        attempts=attempts,
        last_exception=last_exception
    )
