"""
Tests for async_utils module.

Covers run_sync, race_abort and gather_settled.
"""

import asyncio

import pytest

from crosspost.core.async_utils import (
    gather_settled,
    race_abort,
    run_sync,
)
from crosspost.errors import SyncCancelledError, SyncTimeoutError
from crosspost.sync.cancellation import CancellationToken


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


async def test_run_sync_calls_function():
    """run_sync runs the function in a thread and returns its result."""
    result = await run_sync(_sync_add, 3, 4)
    assert result == 7


async def test_run_sync_passes_kwargs():
    """run_sync forwards keyword arguments."""

    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    result = await run_sync(_kw_func, name="world")
    assert result == "hello world"


# ---------------------------------------------------------------------------
# race_abort
# ---------------------------------------------------------------------------


async def test_race_abort_returns_result():
    token = CancellationToken("A1")

    async def work():
        await asyncio.sleep(0)
        return "done"

    assert await race_abort(work(), token) == "done"


async def test_race_abort_raises_reason_immediately():
    token = CancellationToken("A1")
    gate = asyncio.Event()
    orphans: list[asyncio.Task] = []

    async def work():
        await gate.wait()
        token.raise_if_aborted()
        return "late"

    racer = asyncio.create_task(race_abort(work(), token, on_orphan=orphans.append))
    await asyncio.sleep(0)
    token.abort(SyncTimeoutError(5))

    with pytest.raises(SyncTimeoutError):
        await racer
    assert len(orphans) == 1
    assert not orphans[0].done()

    gate.set()
    await asyncio.wait(orphans)
    assert isinstance(orphans[0].exception(), SyncTimeoutError)


async def test_race_abort_propagates_work_error():
    token = CancellationToken("A1")

    async def work():
        raise SyncCancelledError("stopped early")

    with pytest.raises(SyncCancelledError, match="stopped early"):
        await race_abort(work(), token)


async def test_race_abort_cancellation_cancels_work():
    token = CancellationToken("A1")
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def work():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    racer = asyncio.create_task(race_abort(work(), token))
    await started.wait()
    racer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await racer
    await asyncio.wait_for(cancelled.wait(), 1)


# ---------------------------------------------------------------------------
# gather_settled
# ---------------------------------------------------------------------------


async def test_gather_settled_keeps_order_and_errors():
    async def ok(value):
        await asyncio.sleep(0)
        return value

    async def fail():
        raise ValueError("bad")

    results = await gather_settled([ok(1), fail(), ok(3)])
    assert results[0] == 1
    assert isinstance(results[1], ValueError)
    assert results[2] == 3


async def test_gather_settled_empty():
    assert await gather_settled([]) == []
