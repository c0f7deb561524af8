"""Tests for sync state formatting.

Covers:
- format_state wording for each status, cancellations labelled
- format_states grouping and counts
- format_outcome with failed media
- state_to_json / states_to_json structure
"""

from __future__ import annotations

from crosspost.errors import CANCELLED_MESSAGE, FORCED_CANCEL_MESSAGE
from crosspost.sync.models import SyncOutcome, SyncState, SyncStatus
from crosspost.sync.reporter import (
    format_outcome,
    format_state,
    format_states,
    state_to_json,
    states_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

T0 = 1_700_000_000_000


def _state(key: str, status: SyncStatus, error: str | None = None, url: str | None = None):
    return SyncState(
        key=key, status=status, last_transition_time=T0, error=error, result_url=url
    )


# ---------------------------------------------------------------------------
# format_state / format_states
# ---------------------------------------------------------------------------


class TestFormatState:
    def test_success_with_link(self):
        line = format_state(_state("A1", SyncStatus.SUCCESS, url="https://w/1"))
        assert line.startswith("A1: success (")
        assert line.endswith(" -> https://w/1")

    def test_failure_with_error(self):
        line = format_state(_state("blog:A1", SyncStatus.FAILED, "token expired"))
        assert line.startswith("blog:A1: failed (")
        assert line.endswith(" - token expired")

    def test_cancel_labelled(self):
        assert ": cancelled (" in format_state(
            _state("A1", SyncStatus.FAILED, CANCELLED_MESSAGE)
        )
        assert ": cancelled (" in format_state(
            _state("A1", SyncStatus.FAILED, FORCED_CANCEL_MESSAGE)
        )


class TestFormatStates:
    def test_empty(self):
        assert format_states({}) == "No sync records."

    def test_grouped_and_counted(self):
        states = {
            "A1": _state("A1", SyncStatus.SUCCESS, url="https://w/1"),
            "blog:A1": _state("blog:A1", SyncStatus.FAILED, "boom"),
            "B2": _state("B2", SyncStatus.SYNCING),
        }
        text = format_states(states)
        lines = text.splitlines()
        assert lines[0] == "3 sync records: 1 syncing, 1 success, 1 failed"
        assert text.index("Syncing:") < text.index("Failed:") < text.index("Success:")
        assert "  blog:A1: failed" in text

    def test_empty_sections_omitted(self):
        text = format_states({"A1": _state("A1", SyncStatus.SUCCESS)})
        assert "Failed:" not in text
        assert "Syncing:" not in text
        assert not text.endswith("\n")


class TestFormatOutcome:
    def test_failed_media_listed(self):
        outcome = SyncOutcome(
            state=_state("A1", SyncStatus.SUCCESS, url="https://w/1"),
            target="wechat",
            published_link="https://w/1",
            failed_media=["http://x/1.png", "http://x/2.png"],
        )
        text = format_outcome(outcome)
        assert "Link:" not in text
        assert "2 media file(s) not rehosted:" in text
        assert "    http://x/2.png" in text

    def test_plain_failure(self):
        outcome = SyncOutcome(state=_state("A1", SyncStatus.FAILED, "boom"), target="wechat")
        assert format_outcome(outcome) == format_state(outcome.state)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestJson:
    def test_pending_for_unknown_key(self):
        assert state_to_json(None, "A1") == {"key": "A1", "status": "pending"}

    def test_record_fields(self):
        data = state_to_json(_state("A1", SyncStatus.SUCCESS, url="https://w/1"))
        assert data == {
            "key": "A1",
            "status": "success",
            "last_transition_time": T0,
            "result_url": "https://w/1",
            "cancelled": False,
        }

    def test_cancel_flag(self):
        data = state_to_json(_state("A1", SyncStatus.FAILED, CANCELLED_MESSAGE))
        assert data["cancelled"] is True
        assert data["error"] == CANCELLED_MESSAGE

    def test_states_to_json(self):
        states = {
            "b": _state("b", SyncStatus.FAILED, "x"),
            "a": _state("a", SyncStatus.SUCCESS),
        }
        data = states_to_json(states)
        assert data["counts"] == {"syncing": 0, "success": 1, "failed": 1}
        assert [s["key"] for s in data["states"]] == ["a", "b"]
