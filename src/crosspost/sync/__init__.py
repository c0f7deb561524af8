"""Sync engine: state, cancellation and orchestration of publish runs.

The orchestrator lives in ``crosspost.sync.engine``; it is not re-exported
here so that the lighter modules can be imported without the converters.
"""

from .cancellation import CancellationRegistry, CancellationToken
from .keys import parse_sync_key, sync_key
from .models import (
    ContentBlock,
    ItemMetadata,
    PublishMode,
    PublishRequest,
    RichTextRun,
    SyncOutcome,
    SyncState,
    SyncStatus,
)
from .state import SyncStateStore

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "ContentBlock",
    "ItemMetadata",
    "PublishMode",
    "PublishRequest",
    "RichTextRun",
    "SyncOutcome",
    "SyncState",
    "SyncStateStore",
    "SyncStatus",
    "parse_sync_key",
    "sync_key",
]
