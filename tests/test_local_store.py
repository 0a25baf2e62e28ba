"""Tests for the local snapshot store."""

import json
import tempfile
from pathlib import Path

import pytest

from nutrisync.errors import LocalStoreError
from nutrisync.models import Snapshot
from nutrisync.sync.local_store import (
    LocalStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
    local_key,
)

from helpers import NOW_MS, make_dataset, make_log, make_meal


class TestSQLiteKeyValueStore:
    """Tests for SQLiteKeyValueStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "local.db"
        self.store = SQLiteKeyValueStore(self.db_path)

    def teardown_method(self):
        """Clean up."""
        self.store.close()

    def test_get_missing_key(self):
        assert self.store.get("nope") is None

    def test_set_then_get(self):
        self.store.set("k", "v1")
        self.store.set("k", "v2")
        assert self.store.get("k") == "v2"
        assert self.store.keys() == ["k"]

    def test_delete(self):
        self.store.set("k", "v")
        self.store.delete("k")
        assert self.store.get("k") is None

    def test_persists_across_instances(self):
        self.store.set("k", "v")
        self.store.close()

        reopened = SQLiteKeyValueStore(self.db_path)
        try:
            assert reopened.get("k") == "v"
        finally:
            reopened.close()

    def test_quota_exceeded(self):
        store = SQLiteKeyValueStore(self.db_path, max_value_bytes=10)
        with pytest.raises(LocalStoreError):
            store.set("k", "x" * 11)
        assert store.get("k") is None
        store.close()


class TestMemoryKeyValueStore:
    """Tests for MemoryKeyValueStore."""

    def test_quota_counts_other_keys(self):
        store = MemoryKeyValueStore(quota_bytes=10)
        store.set("a", "x" * 6)
        with pytest.raises(LocalStoreError):
            store.set("b", "x" * 6)

    def test_overwrite_within_quota(self):
        store = MemoryKeyValueStore(quota_bytes=10)
        store.set("a", "x" * 8)
        store.set("a", "y" * 9)
        assert store.get("a") == "y" * 9


class TestLocalStore:
    """Tests for LocalStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.kv = MemoryKeyValueStore()
        self.local = LocalStore(self.kv)

    def test_get_absent(self):
        assert self.local.get("alice") is None

    def test_set_then_get_full_fidelity(self):
        dataset = make_dataset(logs=(make_log(-30, make_meal(calories=512.6)),))
        snapshot = Snapshot(dataset=dataset, last_synced=NOW_MS)

        result = self.local.set("alice", snapshot)

        assert result.success is True
        assert self.local.get("alice") == snapshot

    def test_users_are_namespaced(self):
        self.local.set("alice", Snapshot(dataset=make_dataset("Alice"), last_synced=1))
        self.local.set("bob", Snapshot(dataset=make_dataset("Bob"), last_synced=2))

        assert self.local.get("alice").dataset.profile.name == "Alice"
        assert self.local.get("bob").dataset.profile.name == "Bob"
        assert sorted(self.kv.keys()) == [local_key("alice"), local_key("bob")]

    def test_malformed_json_is_absent(self):
        self.kv.set(local_key("alice"), "{not json")
        assert self.local.get("alice") is None

    def test_malformed_shape_is_absent(self):
        self.kv.set(local_key("alice"), json.dumps({"profile": None, "logs": "nope"}))
        assert self.local.get("alice") is None

    def test_overflowing_number_is_absent(self):
        raw = json.dumps(Snapshot(dataset=make_dataset(), last_synced=1).to_dict())
        self.kv.set(local_key("alice"), raw.replace('"lastSynced": 1', '"lastSynced": 1e999'))

        assert self.local.get("alice") is None

    def test_quota_failure_reported_not_raised(self):
        local = LocalStore(MemoryKeyValueStore(quota_bytes=100))
        result = local.set("alice", Snapshot(dataset=make_dataset(), last_synced=1))

        assert result.success is False
        assert "Quota" in result.reason
        assert local.get("alice") is None

    def test_remove(self):
        self.local.set("alice", Snapshot(dataset=make_dataset(), last_synced=1))
        self.local.remove("alice")
        assert self.local.get("alice") is None
