"""Cooperative cancellation tokens and the per-key registry.

A ``CancellationToken`` is created for every sync operation and passed
down every call chain.  Pipeline code checks it at stage boundaries and
inside sequential I/O loops via ``raise_if_aborted()``.  Aborting a token
runs its listeners, then its cleanup callbacks, each exactly once.

The ``CancellationRegistry`` keeps at most one live token per sync key,
which is what enforces "at most one in-flight operation per key".
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from crosspost.errors import SyncCancelledError, SyncError
from crosspost.sync.models import SyncStatus

if TYPE_CHECKING:
    from crosspost.sync.state import SyncStateStore

logger = logging.getLogger(__name__)

SUPERSEDED_MESSAGE = "sync cancelled (superseded by a newer request)"

Listener = Callable[[SyncError], None]
Cleanup = Callable[[], None]


class CancellationToken:
    """Abort flag, listeners and cleanup list for one operation.

    Args:
        key: Sync key the token belongs to (for logging).
    """

    def __init__(self, key: str) -> None:
        self.key = key
        self._reason: SyncError | None = None
        self._event = asyncio.Event()
        self._listeners: list[Listener] = []
        self._cleanups: list[Cleanup] = []

    def __repr__(self) -> str:
        return f"CancellationToken(key={self.key!r}, aborted={self.aborted})"

    @property
    def aborted(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> SyncError | None:
        """The error checkpoints raise once the token is aborted."""
        return self._reason

    def add_listener(self, listener: Listener) -> None:
        """Register *listener*; called at once if already aborted."""
        if self.aborted:
            self._call(listener, self._reason)
            return
        self._listeners.append(listener)

    def add_cleanup(self, cleanup: Cleanup) -> None:
        """Register *cleanup* to run on abort; runs at once if aborted."""
        if self.aborted:
            self._call(cleanup)
            return
        self._cleanups.append(cleanup)

    def remove_cleanup(self, cleanup: Cleanup) -> None:
        """Unregister *cleanup* once its artifact was disposed normally."""
        try:
            self._cleanups.remove(cleanup)
        except ValueError:
            pass

    def abort(self, reason: SyncError | None = None) -> bool:
        """Abort the token.

        Listeners run first, then cleanups; both lists are drained so a
        second ``abort`` is a no-op.

        Args:
            reason: Error raised by later checkpoints.  Defaults to a
                plain ``SyncCancelledError``.

        Returns:
            ``True`` if this call performed the abort.
        """
        if self.aborted:
            return False
        self._reason = reason or SyncCancelledError()
        self._event.set()
        logger.debug("Token %s aborted: %s", self.key, self._reason)

        listeners, self._listeners = self._listeners, []
        cleanups, self._cleanups = self._cleanups, []
        for listener in listeners:
            self._call(listener, self._reason)
        for cleanup in cleanups:
            self._call(cleanup)
        return True

    def raise_if_aborted(self) -> None:
        """Checkpoint: raise the abort reason if the token was aborted."""
        if self._reason is not None:
            raise self._reason

    async def wait(self) -> SyncError:
        """Block until the token is aborted; return the reason."""
        await self._event.wait()
        assert self._reason is not None
        return self._reason

    def _call(self, callback: Callable, *args) -> None:
        """Run a listener or cleanup; a failing callback must not stop the rest."""
        try:
            callback(*args)
        except Exception:
            logger.exception(
                "Cancellation callback %r failed for %s", callback, self.key
            )


class CancellationRegistry:
    """Track at most one live cancellation token per sync key.

    Args:
        store: Optional state store used by ``cancel`` to detect keys that
            are ``syncing`` on disk but have no token (state and registry
            desynchronize after a crash-recovery sweep).
    """

    def __init__(self, store: SyncStateStore | None = None) -> None:
        self._tokens: dict[str, CancellationToken] = {}
        self._store = store

    def begin(self, key: str) -> CancellationToken:
        """Supersede any live token for *key* and return a fresh one."""
        previous = self._tokens.pop(key, None)
        if previous is not None:
            logger.warning(
                "Sync %s already in progress, cancelling previous run", key
            )
            previous.abort(SyncCancelledError(SUPERSEDED_MESSAGE))
        token = CancellationToken(key)
        self._tokens[key] = token
        return token

    def cancel(self, key: str, reason: SyncError | None = None) -> bool:
        """Abort and remove the token for *key*.

        Returns:
            ``True`` if a token existed, or if none existed but the store
            still shows the key as ``syncing`` (the caller must then force
            the state to failed).  ``False`` otherwise.
        """
        token = self._tokens.pop(key, None)
        if token is not None:
            token.abort(reason)
            logger.info("Cancelled sync %s", key)
            return True

        if self._store is not None:
            state = self._store.get(key)
            if state is not None and state.status == SyncStatus.SYNCING:
                logger.warning(
                    "Sync %s shows syncing but has no live token", key
                )
                return True

        logger.warning("No sync operation found for %s", key)
        return False

    def end(self, key: str, token: CancellationToken | None = None) -> None:
        """Remove the token for *key* without aborting it.

        When *token* is given, only that exact token is removed, so a
        finishing run never discards the token of the run superseding it.
        """
        current = self._tokens.get(key)
        if current is None:
            return
        if token is None or current is token:
            del self._tokens[key]

    def get(self, key: str) -> CancellationToken | None:
        return self._tokens.get(key)

    def is_current(self, key: str, token: CancellationToken) -> bool:
        """Return ``True`` if *token* is still the registered one for *key*."""
        return self._tokens.get(key) is token

    def active_keys(self) -> list[str]:
        return list(self._tokens)
