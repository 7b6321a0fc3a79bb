"""Tests for the usage store"""
import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from runconfigs.errors import PersistenceFailure
from runconfigs.usage import UsageStore

from .conftest import FIXED_NOW


class TestUsageStore:
    """Tests for UsageStore"""

    @pytest.fixture
    def usage_path(self, tmp_path):
        return tmp_path / ".vscode" / "run-config-usage.json"

    def test_missing_file_loads_empty(self, usage_path):
        store = UsageStore(usage_path)
        assert store.load() == {}

    def test_corrupt_file_loads_empty(self, usage_path, caplog):
        """Test a parse failure is not fatal"""
        usage_path.parent.mkdir(parents=True)
        usage_path.write_text("{not json", encoding="utf-8")
        store = UsageStore(usage_path)
        with caplog.at_level(logging.WARNING):
            assert store.load() == {}
        assert "Error loading usage data" in caplog.text

    def test_invalid_record_dropped(self, usage_path):
        usage_path.parent.mkdir(parents=True)
        usage_path.write_text(json.dumps({
            "launch-0": {"count": 2, "lastUsed": "2026-10-01T08:00:00.000Z"},
            "task-0": {"count": -1, "lastUsed": "2026-10-01T08:00:00.000Z"},
            "task-1": "garbage",
        }), encoding="utf-8")
        entries = UsageStore(usage_path).load()
        assert list(entries) == ["launch-0"]
        assert entries["launch-0"].count == 2
        assert entries["launch-0"].last_used == datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)

    def test_record_without_last_used_keeps_count(self, usage_path):
        usage_path.parent.mkdir(parents=True)
        usage_path.write_text(json.dumps({"launch-0": {"count": 5}}), encoding="utf-8")
        store = UsageStore(usage_path, clock=lambda: FIXED_NOW)

        entries = store.load()
        assert entries["launch-0"].count == 5
        assert entries["launch-0"].last_used is None

        store.record_use("task-0")
        data = json.loads(usage_path.read_text(encoding="utf-8"))
        assert data["launch-0"] == {"count": 5}

    def test_record_use_initializes_and_persists(self, usage_path):
        """Test first use counts as 1 and is written immediately"""
        store = UsageStore(usage_path, clock=lambda: FIXED_NOW)
        store.load()
        entry = store.record_use("task-3")

        assert entry.count == 1
        assert entry.last_used == FIXED_NOW
        data = json.loads(usage_path.read_text(encoding="utf-8"))
        assert data == {"task-3": {"count": 1, "lastUsed": "2026-10-17T12:00:00.000Z"}}

    def test_record_use_increments(self, usage_path):
        times = iter([FIXED_NOW, FIXED_NOW + timedelta(minutes=5)])
        store = UsageStore(usage_path, clock=lambda: next(times))
        store.record_use("launch-0")
        entry = store.record_use("launch-0")

        assert entry.count == 2
        assert entry.last_used == FIXED_NOW + timedelta(minutes=5)

        reloaded = UsageStore(usage_path)
        assert reloaded.load()["launch-0"].count == 2

    def test_forget_removes_and_persists(self, usage_path):
        store = UsageStore(usage_path, clock=lambda: FIXED_NOW)
        store.record_use("launch-0")
        store.record_use("launch-1")
        store.forget("launch-0")

        assert store.get("launch-0") is None
        assert set(json.loads(usage_path.read_text(encoding="utf-8"))) == {"launch-1"}

    def test_forget_unknown_identity(self, usage_path):
        store = UsageStore(usage_path)
        store.forget("task-9")
        assert json.loads(usage_path.read_text(encoding="utf-8")) == {}

    def test_save_failure_raises_persistence_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = UsageStore(blocker / "usage.json")
        with pytest.raises(PersistenceFailure):
            store.save()

    def test_record_use_survives_write_failure(self, tmp_path, caplog):
        """Test a write failure is logged, not raised"""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = UsageStore(blocker / "usage.json", clock=lambda: FIXED_NOW)

        with caplog.at_level(logging.ERROR):
            entry = store.record_use("launch-0")

        assert entry.count == 1
        assert "Error saving usage data" in caplog.text

    def test_memory_only_without_path(self):
        store = UsageStore(None, clock=lambda: FIXED_NOW)
        assert store.load() == {}
        store.record_use("task-0")
        assert store.get("task-0").count == 1
