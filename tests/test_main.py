"""Tests for session wiring and the CLI."""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from nutrisync.config import Config
from nutrisync.lock import SessionLock
from nutrisync.main import build_remote_store, build_session, main
from nutrisync.sync.coordinator import SyncCoordinator
from nutrisync.sync.remote_store import HttpRemoteStore, SimulatedRemoteStore

from helpers import ManualClock, make_dataset


class TestBuildRemoteStore:
    """Tests for build_remote_store."""

    def test_simulated_backend(self):
        config = Config(local_db_path=str(Path(tempfile.mkdtemp()) / "local.db"))
        assert isinstance(build_remote_store(config, ManualClock()), SimulatedRemoteStore)

    def test_http_backend(self):
        config = Config()
        config.remote.backend = "http"
        remote = build_remote_store(config, ManualClock())
        assert isinstance(remote, HttpRemoteStore)
        remote.close()

    def test_unknown_backend(self):
        config = Config()
        config.remote.backend = "carrier-pigeon"
        with pytest.raises(ValueError):
            build_remote_store(config, ManualClock())


class TestBuildSession:
    """Tests for build_session."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = Config(local_db_path=str(Path(tempfile.mkdtemp()) / "local.db"))
        self.config.remote.read_latency_ms = 0
        self.config.remote.write_latency_ms = 0

    def test_session_runs_retry_job_while_open(self):
        session = build_session(self.config, "alice")
        assert isinstance(session.coordinator, SyncCoordinator)

        session.start()
        try:
            scheduler = session.coordinator.scheduler
            assert scheduler.running is True
            assert scheduler.get_job(SyncCoordinator.RETRY_JOB_ID) is not None
        finally:
            session.close()

        assert session.coordinator.scheduler.running is False

    def test_retry_job_follows_config(self):
        self.config.sync.background_retry = False
        session = build_session(self.config, "alice")

        session.start()
        try:
            assert session.coordinator.scheduler.running is False
        finally:
            session.close()


class TestCli:
    """End-to-end CLI runs against the simulated remote."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        config = Config(local_db_path=str(self.temp_dir / "data" / "local.db"))
        config.remote.read_latency_ms = 0
        config.remote.write_latency_ms = 0
        self.config_file = self.temp_dir / "config.json"
        config.save(self.config_file)
        self.logging_patch = patch("nutrisync.main.setup_logging")
        self.logging_patch.start()

    def teardown_method(self):
        """Clean up."""
        self.logging_patch.stop()

    def _run(self, *args) -> int:
        return main(["--config", str(self.config_file), *args])

    def _write_backup(self) -> Path:
        path = self.temp_dir / "backup.json"
        path.write_text(json.dumps(make_dataset("Imported").to_dict()), encoding="utf-8")
        return path

    def test_no_command_prints_help(self):
        assert main([]) == 1

    def test_status_for_new_user(self, capsys):
        assert self._run("status", "--user", "alice") == 0

        status = json.loads(capsys.readouterr().out)
        assert status["has_dataset"] is False
        assert status["status"] == "synced"

    def test_export_without_data(self):
        assert self._run("export", "--user", "alice", "--output", str(self.temp_dir)) == 1

    def test_import_then_export(self, capsys):
        backup = self._write_backup()

        assert self._run("import", str(backup), "--user", "alice", "--yes") == 0
        assert self._run("export", "--user", "alice", "--output", str(self.temp_dir / "out")) == 0

        exported = list((self.temp_dir / "out").glob("nutrisync_backup_alice_*.json"))
        assert len(exported) == 1
        document = json.loads(exported[0].read_text(encoding="utf-8"))
        assert document["profile"]["name"] == "Imported"
        assert document["user"] == "alice"

    def test_import_invalid_file(self):
        path = self.temp_dir / "bad.json"
        path.write_text(json.dumps({"profile": None}), encoding="utf-8")

        assert self._run("import", str(path), "--user", "alice", "--yes") == 1

    def test_import_missing_file(self):
        assert self._run("import", str(self.temp_dir / "nope.json"), "--user", "alice", "--yes") == 1

    def test_import_declined(self, capsys):
        backup = self._write_backup()

        with patch("builtins.input", return_value="n"):
            assert self._run("import", str(backup), "--user", "alice") == 0

        assert "Cancelled" in capsys.readouterr().out

    def test_resync(self, capsys):
        self._run("import", str(self._write_backup()), "--user", "alice", "--yes")

        assert self._run("resync", "--user", "alice") == 0
        assert "synced" in capsys.readouterr().out

    def test_resync_without_data(self, capsys):
        assert self._run("resync", "--user", "alice") == 0
        assert "Nothing to sync" in capsys.readouterr().out

    def test_remove_account(self):
        self._run("import", str(self._write_backup()), "--user", "alice", "--yes")

        assert self._run("remove-account", "--user", "alice", "--yes") == 0

        config = Config.load(self.config_file)
        remote = build_remote_store(config, ManualClock())
        assert remote.get("alice") is None

    def test_remove_admin_refused(self):
        assert self._run("remove-account", "--user", "admin", "--yes") == 1

    def test_second_session_for_user_refused(self, capsys):
        with SessionLock("alice", self.temp_dir / "data") as lock:
            assert lock.acquire() is True
            assert self._run("status", "--user", "alice") == 1

        assert "already running" in capsys.readouterr().out
