"""Sync state persistence layer.

Manages the single JSON document (``sync-states.json``) that maps every
sync key to its last ``SyncState`` record.  The store is the only writer
of that document.

Key design choices:

* **Atomic writes** -- every mutation writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Read-modify-write** -- each mutation re-reads the whole document,
  applies one change and writes it back under a lock, so concurrent runs
  for different keys never clobber each other.
* **Restart recovery** -- ``load()`` turns every surviving ``syncing``
  record into ``failed``: its token and timer died with the old process.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from crosspost.errors import RESTART_MESSAGE, STUCK_MESSAGE
from crosspost.sync.models import SyncState, SyncStatus, now_ms

logger = logging.getLogger(__name__)


class SyncStateStore:
    """Load, save, and query sync state records.

    Args:
        path: Path of the JSON state document.  Its parent directory is
            created on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._records: dict[str, SyncState] = {}

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load(self) -> dict[str, SyncState]:
        """Read the persisted records and fail any left in ``syncing``.

        The recovered records are persisted before returning.

        Returns:
            Mapping of key to state after recovery.
        """
        with self._lock:
            records = self._read()
            interrupted = [
                key
                for key, state in records.items()
                if state.status == SyncStatus.SYNCING
            ]
            for key in interrupted:
                records[key] = SyncState(
                    key=key,
                    status=SyncStatus.FAILED,
                    error=RESTART_MESSAGE,
                )
            if interrupted:
                logger.warning(
                    "Reset %d interrupted sync(s) after restart: %s",
                    len(interrupted),
                    ", ".join(interrupted),
                )
                self._write(records)
            self._records = records
            logger.info(
                "Loaded %d sync state record(s) from %s",
                len(records),
                self._path,
            )
            return dict(records)

    def refresh(self) -> dict[str, SyncState]:
        """Re-read the document without failing ``syncing`` records.

        For processes that do not own the in-flight runs, such as one-shot
        CLI queries next to a running server.
        """
        with self._lock:
            self._records = self._read()
            return dict(self._records)

    def sweep_stuck(
        self, threshold_ms: int, now: int | None = None
    ) -> list[str]:
        """Fail every ``syncing`` record older than *threshold_ms*.

        Args:
            threshold_ms: Maximum age of a ``syncing`` record.
            now: Reference time in epoch ms (defaults to current time).

        Returns:
            Keys that were transitioned to ``failed``.
        """
        reference = now if now is not None else now_ms()
        with self._lock:
            records = self._read()
            stuck = [
                key
                for key, state in records.items()
                if state.status == SyncStatus.SYNCING
                and reference - state.last_transition_time > threshold_ms
            ]
            for key in stuck:
                logger.warning(
                    "Sync %s stuck in syncing for over %d ms, resetting",
                    key,
                    threshold_ms,
                )
                records[key] = SyncState(
                    key=key,
                    status=SyncStatus.FAILED,
                    error=STUCK_MESSAGE,
                )
            if stuck:
                self._write(records)
            self._records = records
            return stuck

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: str) -> SyncState | None:
        """Return the record for *key*, or ``None`` (implicit pending)."""
        with self._lock:
            return self._records.get(key)

    def get_all(self) -> dict[str, SyncState]:
        """Return a snapshot of every record."""
        with self._lock:
            return dict(self._records)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set(
        self,
        key: str,
        status: SyncStatus,
        error: str | None = None,
        result_url: str | None = None,
    ) -> SyncState:
        """Write a new record for *key* and persist it before returning.

        Raises:
            ValueError: If *status* is ``PENDING`` (use ``reset``) or the
                error/status invariant is violated.
        """
        if status == SyncStatus.PENDING:
            raise ValueError("pending is implicit; use reset() instead")
        state = SyncState(
            key=key,
            status=status,
            error=error,
            result_url=result_url,
        )
        with self._lock:
            records = self._read()
            records[key] = state
            self._write(records)
            self._records = records
        logger.debug("State %s -> %s", key, status.value)
        return state

    def reset(self, key: str) -> bool:
        """Delete the record for *key*.

        Returns:
            ``True`` if a record existed.
        """
        with self._lock:
            records = self._read()
            existed = records.pop(key, None) is not None
            if existed:
                self._write(records)
            self._records = records
        if existed:
            logger.info("Reset sync state for %s", key)
        return existed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, SyncState]:
        """Read and validate the whole document from disk."""
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as fh:
                raw = json.load(fh)
        except json.JSONDecodeError as exc:
            backup = self._path.with_suffix(".corrupt")
            logger.error(
                "State file %s is corrupt (%s); moved to %s",
                self._path,
                exc,
                backup,
            )
            os.replace(self._path, backup)
            return {}

        if not isinstance(raw, dict):
            logger.error(
                "State file %s has non-dict root (%s), ignoring",
                self._path,
                type(raw).__name__,
            )
            return {}

        records: dict[str, SyncState] = {}
        for key, data in raw.items():
            try:
                records[key] = SyncState.model_validate({**data, "key": key})
            except (PydanticValidationError, TypeError) as exc:
                logger.warning("Dropping invalid state record %s: %s", key, exc)
        return records

    def _write(self, records: dict[str, SyncState]) -> None:
        """Persist *records* atomically (temp file + ``os.replace``)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            key: state.model_dump(mode="json", exclude_none=True)
            for key, state in records.items()
        }
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
