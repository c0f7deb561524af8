"""Exception taxonomy for sync operations.

Every failure that reaches the orchestrator is a ``SyncError`` subclass
(or is wrapped into one) so its message can be recorded verbatim in the
state record's ``error`` field.

- ``NotFoundError`` / ``UnauthorizedError``: fatal, raised by the content
  source, never retried.
- ``NetworkTransientError``: retried close to its source by
  ``retry_transient``.
- ``ValidationError``: fatal, e.g. empty title or content.
- ``MediaUploadError``: non-fatal, collected by the media coordinator.
- ``PublishError``: fatal, carries the target adapter's message.
- ``SyncCancelledError`` / ``SyncTimeoutError``: fatal, distinct wording.
"""

from __future__ import annotations

CANCELLED_MESSAGE = "sync cancelled"
FORCED_CANCEL_MESSAGE = "sync cancelled (state forced)"
RESTART_MESSAGE = "interrupted by restart"
STUCK_MESSAGE = "timed out, auto-reset"


class SyncError(Exception):
    """Base class for all sync failures."""

    #: Short machine-readable category used by reporters and MCP responses.
    kind = "sync_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFoundError(SyncError):
    kind = "not_found"


class UnauthorizedError(SyncError):
    kind = "unauthorized"


class NetworkTransientError(SyncError):
    kind = "network_transient"


class ValidationError(SyncError):
    kind = "validation_error"


class MediaUploadError(SyncError):
    kind = "media_upload_failure"


class PublishError(SyncError):
    kind = "publish_failure"


class SyncCancelledError(SyncError):
    """Raised at a checkpoint when the operation's token is aborted."""

    kind = "cancelled"

    def __init__(self, message: str = CANCELLED_MESSAGE) -> None:
        super().__init__(message)


class SyncTimeoutError(SyncError):
    """Raised when the operation timer fires before the pipeline settles."""

    kind = "timeout"

    def __init__(self, seconds: float) -> None:
        super().__init__(f"sync timed out after {seconds:g} seconds")
        self.seconds = seconds


def is_cancellation(message: str | None) -> bool:
    """Return ``True`` if a recorded error message denotes a user cancel.

    UIs use this to show cancellations without alarming the user.
    """
    return bool(message) and message.startswith(CANCELLED_MESSAGE)
