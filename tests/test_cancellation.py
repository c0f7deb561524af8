"""Tests for CancellationToken and CancellationRegistry."""

from __future__ import annotations

import asyncio

import pytest

from crosspost.errors import (
    CANCELLED_MESSAGE,
    SyncCancelledError,
    SyncError,
    SyncTimeoutError,
)
from crosspost.sync.cancellation import (
    SUPERSEDED_MESSAGE,
    CancellationRegistry,
    CancellationToken,
)
from crosspost.sync.models import SyncStatus
from crosspost.sync.state import SyncStateStore

# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------


class TestCancellationToken:
    def test_fresh_token_not_aborted(self):
        token = CancellationToken("A1")
        assert not token.aborted
        assert token.reason is None
        token.raise_if_aborted()

    def test_abort_default_reason(self):
        token = CancellationToken("A1")
        assert token.abort() is True
        assert isinstance(token.reason, SyncCancelledError)
        with pytest.raises(SyncCancelledError, match=CANCELLED_MESSAGE):
            token.raise_if_aborted()

    def test_abort_with_reason(self):
        token = CancellationToken("A1")
        token.abort(SyncTimeoutError(300))
        with pytest.raises(SyncTimeoutError, match="timed out after 300 seconds"):
            token.raise_if_aborted()

    def test_second_abort_is_noop(self):
        token = CancellationToken("A1")
        token.abort(SyncTimeoutError(1))
        assert token.abort() is False
        assert isinstance(token.reason, SyncTimeoutError)

    def test_listeners_then_cleanups_run_once(self):
        token = CancellationToken("A1")
        calls: list[str] = []
        token.add_cleanup(lambda: calls.append("cleanup"))
        token.add_listener(lambda reason: calls.append(f"listener:{reason}"))

        token.abort()
        token.abort()
        assert calls == [f"listener:{CANCELLED_MESSAGE}", "cleanup"]

    def test_callbacks_after_abort_run_immediately(self):
        token = CancellationToken("A1")
        token.abort()
        calls: list[str] = []
        token.add_cleanup(lambda: calls.append("cleanup"))
        token.add_listener(lambda reason: calls.append("listener"))
        assert calls == ["cleanup", "listener"]

    def test_removed_cleanup_not_run(self):
        token = CancellationToken("A1")
        calls: list[str] = []

        def cleanup():
            calls.append("cleanup")

        token.add_cleanup(cleanup)
        token.remove_cleanup(cleanup)
        token.remove_cleanup(cleanup)
        token.abort()
        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken("A1")
        calls: list[str] = []

        def broken():
            raise OSError("disk gone")

        token.add_cleanup(broken)
        token.add_cleanup(lambda: calls.append("second"))
        token.abort()
        assert calls == ["second"]

    async def test_wait_returns_reason(self):
        token = CancellationToken("A1")
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        reason = SyncError("stop")
        token.abort(reason)
        assert await waiter is reason


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestCancellationRegistry:
    def test_begin_registers_token(self):
        registry = CancellationRegistry()
        token = registry.begin("A1")
        assert registry.get("A1") is token
        assert registry.is_current("A1", token)
        assert registry.active_keys() == ["A1"]

    def test_begin_supersedes_previous(self):
        registry = CancellationRegistry()
        first = registry.begin("A1")
        second = registry.begin("A1")

        assert first.aborted
        assert first.reason.message == SUPERSEDED_MESSAGE
        assert not second.aborted
        assert registry.get("A1") is second
        assert not registry.is_current("A1", first)

    def test_keys_are_independent(self):
        registry = CancellationRegistry()
        a = registry.begin("A1")
        registry.begin("blog:A1")
        assert not a.aborted
        assert sorted(registry.active_keys()) == ["A1", "blog:A1"]

    def test_cancel_aborts_and_removes(self):
        registry = CancellationRegistry()
        token = registry.begin("A1")
        assert registry.cancel("A1") is True
        assert token.aborted
        assert registry.get("A1") is None

    def test_cancel_unknown_key(self):
        assert CancellationRegistry().cancel("A1") is False

    def test_cancel_reports_orphaned_syncing(self, tmp_path):
        store = SyncStateStore(tmp_path / "s.json")
        store.set("A1", SyncStatus.SYNCING)
        registry = CancellationRegistry(store)
        assert registry.cancel("A1") is True

    def test_cancel_ignores_finished_record(self, tmp_path):
        store = SyncStateStore(tmp_path / "s.json")
        store.set("A1", SyncStatus.SUCCESS)
        assert CancellationRegistry(store).cancel("A1") is False

    def test_end_only_removes_own_token(self):
        registry = CancellationRegistry()
        first = registry.begin("A1")
        second = registry.begin("A1")

        registry.end("A1", first)
        assert registry.get("A1") is second
        registry.end("A1", second)
        assert registry.get("A1") is None
        assert not second.aborted
