"""Tests for the sync state store.

Covers:
- Load from a missing file, restart recovery of syncing records
- set/get/reset and persistence before return
- Error/status invariant enforced by the model
- Stuck sweep by age
- Corrupt and invalid documents
- refresh() reading without recovery
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from crosspost.errors import RESTART_MESSAGE, STUCK_MESSAGE
from crosspost.sync.models import SyncState, SyncStatus
from crosspost.sync.state import SyncStateStore

# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


class TestSyncStateStoreLoad:
    def test_load_missing_file_is_empty(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "none.json")
        assert store.load() == {}
        assert store.get("A1") is None

    def test_load_fails_interrupted_syncs(self, tmp_path: Path):
        path = tmp_path / "state.json"
        writer = SyncStateStore(path)
        writer.set("A1", SyncStatus.SYNCING)
        writer.set("blog:A1", SyncStatus.SUCCESS, result_url="https://b/1")

        store = SyncStateStore(path)
        records = store.load()

        assert records["A1"].status == SyncStatus.FAILED
        assert records["A1"].error == RESTART_MESSAGE
        assert records["blog:A1"].status == SyncStatus.SUCCESS

    def test_recovery_is_persisted(self, tmp_path: Path):
        path = tmp_path / "state.json"
        SyncStateStore(path).set("A1", SyncStatus.SYNCING)
        SyncStateStore(path).load()

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["A1"]["status"] == "failed"
        assert raw["A1"]["error"] == RESTART_MESSAGE

    def test_no_syncing_record_survives_load(self, tmp_path: Path):
        path = tmp_path / "state.json"
        writer = SyncStateStore(path)
        for key in ("a", "b", "c"):
            writer.set(key, SyncStatus.SYNCING)

        records = SyncStateStore(path).load()
        assert all(s.status != SyncStatus.SYNCING for s in records.values())

    def test_refresh_keeps_syncing(self, tmp_path: Path):
        path = tmp_path / "state.json"
        SyncStateStore(path).set("A1", SyncStatus.SYNCING)

        store = SyncStateStore(path)
        store.refresh()
        assert store.get("A1").status == SyncStatus.SYNCING


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestSyncStateStoreSet:
    def test_set_persists_before_returning(self, tmp_path: Path):
        path = tmp_path / "nested" / "state.json"
        store = SyncStateStore(path)
        state = store.set("A1", SyncStatus.SUCCESS, result_url="https://w/1")

        assert path.exists()
        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["A1"]["status"] == "success"
        assert raw["A1"]["result_url"] == "https://w/1"
        assert "error" not in raw["A1"]
        assert store.get("A1") == state

    def test_set_updates_transition_time(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        first = store.set("A1", SyncStatus.SYNCING)
        second = store.set("A1", SyncStatus.FAILED, "boom")
        assert second.last_transition_time >= first.last_transition_time

    def test_set_pending_rejected(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        with pytest.raises(ValueError, match="pending is implicit"):
            store.set("A1", SyncStatus.PENDING)

    def test_failed_requires_error(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        with pytest.raises(ValueError):
            store.set("A1", SyncStatus.FAILED)

    def test_success_rejects_error(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        with pytest.raises(ValueError):
            store.set("A1", SyncStatus.SUCCESS, "oops")

    def test_set_keeps_other_writers_records(self, tmp_path: Path):
        path = tmp_path / "s.json"
        a = SyncStateStore(path)
        b = SyncStateStore(path)
        a.set("A1", SyncStatus.SYNCING)
        b.set("B2", SyncStatus.SYNCING)

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert set(raw) == {"A1", "B2"}

    def test_reset(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        store.set("A1", SyncStatus.FAILED, "boom")
        assert store.reset("A1") is True
        assert store.get("A1") is None
        assert store.reset("A1") is False

    def test_get_all_is_snapshot(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        store.set("A1", SyncStatus.SYNCING)
        snapshot = store.get_all()
        store.set("B2", SyncStatus.SYNCING)
        assert set(snapshot) == {"A1"}


# ---------------------------------------------------------------------------
# Stuck sweep
# ---------------------------------------------------------------------------


class TestSweepStuck:
    def test_sweeps_only_old_syncing(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        old = store.set("A1", SyncStatus.SYNCING)
        store.set("B2", SyncStatus.SUCCESS)

        now = old.last_transition_time + 400_000
        assert store.sweep_stuck(360_000, now=now) == ["A1"]
        assert store.get("A1").error == STUCK_MESSAGE
        assert store.get("B2").status == SyncStatus.SUCCESS

    def test_fresh_syncing_untouched(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "s.json")
        state = store.set("A1", SyncStatus.SYNCING)
        now = state.last_transition_time + 1_000
        assert store.sweep_stuck(360_000, now=now) == []
        assert store.get("A1").status == SyncStatus.SYNCING


# ---------------------------------------------------------------------------
# Damaged documents
# ---------------------------------------------------------------------------


class TestDamagedDocuments:
    def test_corrupt_file_moved_aside(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")

        store = SyncStateStore(path)
        assert store.load() == {}
        assert (tmp_path / "state.corrupt").exists()
        assert not path.exists()

    def test_non_dict_root_ignored(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert SyncStateStore(path).load() == {}

    def test_invalid_record_dropped(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps(
                {
                    "A1": {"status": "failed", "last_transition_time": 1},
                    "B2": {"status": "success", "last_transition_time": 2},
                }
            ),
            encoding="utf-8",
        )
        records = SyncStateStore(path).load()
        assert list(records) == ["B2"]
        assert records["B2"] == SyncState(
            key="B2", status=SyncStatus.SUCCESS, last_transition_time=2
        )
