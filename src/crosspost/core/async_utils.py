"""Async utilities: thread bridging, abort races and settled gathers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence, TypeVar

if TYPE_CHECKING:
    from crosspost.sync.cancellation import CancellationToken

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by adapters to wrap blocking ``requests`` and file I/O calls.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def race_abort(
    awaitable: Awaitable[T],
    token: CancellationToken,
    on_orphan: Callable[[asyncio.Task], None] | None = None,
) -> T:
    """Return the result of *awaitable* unless *token* is aborted first.

    Whichever finishes first wins.  When the token wins, its abort reason
    is raised immediately and the pipeline task is left to wind down
    cooperatively at its next checkpoint; *on_orphan* receives that task
    so the caller can keep track of it.

    Raises:
        SyncError: The token's abort reason, if the token won the race.
    """
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    # Token won.  Surface the abort reason now; the task sees it later.
    task.add_done_callback(_log_orphan_result)
    if on_orphan is not None:
        on_orphan(task)
    raise waiter.result()


def _log_orphan_result(task: asyncio.Task) -> None:
    """Retrieve the outcome of an abandoned pipeline task."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned pipeline finished with: %s", exc)


async def gather_settled(
    coros: Sequence[Awaitable[T]],
) -> list[T | BaseException]:
    """Run awaitables concurrently and wait for all of them to settle.

    A failure in one never cancels the others.  Results are returned in
    input order; failures appear as the exception instance.
    """
    return list(await asyncio.gather(*coros, return_exceptions=True))
