"""Shared async and retry helpers."""

from .async_utils import gather_settled, race_abort, run_sync
from .retry import retry_transient

__all__ = [
    "gather_settled",
    "race_abort",
    "retry_transient",
    "run_sync",
]
