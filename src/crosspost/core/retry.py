"""Retry with backoff for transient network failures.

Only ``NetworkTransientError`` is retried; every other error is treated as
fatal and propagates on the first attempt.  The delay before
retry *n* is ``n * base_delay`` capped at ``max_delay``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from crosspost.errors import NetworkTransientError

if TYPE_CHECKING:
    from crosspost.sync.cancellation import CancellationToken

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 5.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay in seconds before retry number *attempt* (1-indexed)."""
    return min(max(0.0, attempt * base_delay), max_delay)


async def sleep_backoff(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> None:
    await asyncio.sleep(backoff_delay(attempt, base_delay, max_delay))


async def retry_transient(
    func: Callable[[], Awaitable[T]],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    token: CancellationToken | None = None,
    description: str = "operation",
) -> T:
    """Call *func* and retry it on ``NetworkTransientError``.

    The delay before retry *n* is ``n * base_delay`` capped at
    *max_delay* (1s, 2s, ... with the defaults).  Any other exception
    propagates immediately.  The token is checked before every attempt.

    Args:
        func: Zero-argument coroutine factory.
        attempts: Total number of attempts (>= 1).
        base_delay: Backoff increment in seconds.
        max_delay: Upper bound for a single delay.
        token: Optional cancellation token.
        description: Label for log messages.

    Returns:
        The result of the first successful attempt.

    Raises:
        NetworkTransientError: When every attempt failed transiently.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        if token is not None:
            token.raise_if_aborted()
        try:
            return await func()
        except NetworkTransientError as exc:
            if attempt == attempts:
                logger.error(
                    "All %d attempts failed for %s: %s",
                    attempts,
                    description,
                    exc,
                )
                raise NetworkTransientError(
                    f"{exc} (gave up after {attempts} attempts)"
                ) from exc
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Attempt %d/%d failed for %s: %s. Retrying in %.1f seconds...",
                attempt,
                attempts,
                description,
                exc,
                delay,
            )
            await sleep_backoff(attempt, base_delay, max_delay)

    raise AssertionError("unreachable")
