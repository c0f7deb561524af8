"""Sync state formatting.

Provides human-readable and machine-readable output for sync states:

- ``format_state`` -- one line per key.
- ``format_states`` -- table of all keys grouped by status.
- ``format_outcome`` -- post-run summary including failed media.
- ``state_to_json`` / ``states_to_json`` -- dicts for MCP tool output.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING

from crosspost.errors import is_cancellation

from .models import SyncStatus

if TYPE_CHECKING:
    from .models import SyncOutcome, SyncState

# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_timestamp(epoch_ms: int) -> str:
    """Local time of an epoch-millisecond timestamp, to the second."""
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_state(state: SyncState) -> str:
    """Format one record as ``key: status (time)`` plus error or link.

    Cancellations are labelled as such rather than as plain failures.
    """
    status = state.status.value
    if state.status == SyncStatus.FAILED and is_cancellation(state.error):
        status = "cancelled"
    line = f"{state.key}: {status} ({format_timestamp(state.last_transition_time)})"
    if state.error:
        line += f" - {state.error}"
    if state.result_url:
        line += f" -> {state.result_url}"
    return line


def format_states(states: Mapping[str, SyncState]) -> str:
    """Format every record, grouped by status.

    Sections are only included when they contain at least one record.
    """
    if not states:
        return "No sync records."

    groups: dict[SyncStatus, list[SyncState]] = defaultdict(list)
    for key in sorted(states):
        groups[states[key].status].append(states[key])

    counts = ", ".join(
        f"{len(groups[s])} {s.value}" for s in SyncStatus if groups.get(s)
    )
    lines = [f"{len(states)} sync records: {counts}", ""]

    for status in (SyncStatus.SYNCING, SyncStatus.FAILED, SyncStatus.SUCCESS):
        if not groups.get(status):
            continue
        lines.append(f"{status.value.capitalize()}:")
        for state in groups[status]:
            lines.append(f"  {format_state(state)}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_outcome(outcome: SyncOutcome) -> str:
    """Summary of one run: final state, link and media that kept its original URL."""
    lines = [format_state(outcome.state)]
    if outcome.published_link and outcome.published_link != outcome.state.result_url:
        lines.append(f"  Link: {outcome.published_link}")
    if outcome.failed_media:
        lines.append(f"  {len(outcome.failed_media)} media file(s) not rehosted:")
        for url in outcome.failed_media:
            lines.append(f"    {url}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def state_to_json(state: SyncState | None, key: str | None = None) -> dict:
    """Convert a record to a dict; ``None`` becomes an implicit pending record.

    Args:
        state: The record, or ``None`` for a key that was never synced.
        key: Key to report when *state* is ``None``.
    """
    if state is None:
        return {"key": key, "status": SyncStatus.PENDING.value}
    data = state.model_dump(mode="json", exclude_none=True)
    data["cancelled"] = is_cancellation(state.error)
    return data


def states_to_json(states: Mapping[str, SyncState]) -> dict:
    """Convert every record plus per-status counts to a dict."""
    counts = {status.value: 0 for status in SyncStatus if status != SyncStatus.PENDING}
    for state in states.values():
        counts[state.status.value] += 1
    return {
        "counts": counts,
        "states": [state_to_json(states[key]) for key in sorted(states)],
    }
