"""Tests for configuration."""

import json
import logging
import tempfile
from pathlib import Path

from nutrisync.config import (
    API_URL_ENV,
    MIN_RETRY_INTERVAL,
    Config,
    setup_logging,
)


class TestConfig:
    """Tests for Config."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "config.json"

    def test_defaults_when_missing(self, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)

        config = Config.load(self.config_file)

        assert config.remote.backend == "simulated"
        assert config.sync.grace_ms == 500
        assert config.compaction.retention_days == 365
        assert config.compaction.image_retention_days == 7

    def test_save_then_load(self, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)
        config = Config()
        config.remote.backend = "http"
        config.sync.retry_interval_seconds = 120
        config.local_db_path = str(self.temp_dir / "local.db")

        config.save(self.config_file)
        loaded = Config.load(self.config_file)

        assert loaded == config

    def test_unknown_keys_ignored(self, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)
        self.config_file.write_text(json.dumps({
            "remote": {"backend": "http", "legacy_option": 1},
            "theme": "dark",
        }))

        config = Config.load(self.config_file)

        assert config.remote.backend == "http"

    def test_retry_interval_clamped(self):
        self.config_file.write_text(json.dumps({"sync": {"retry_interval_seconds": 1}}))

        assert Config.load(self.config_file).sync.retry_interval_seconds == MIN_RETRY_INTERVAL

    def test_unreadable_file_falls_back(self):
        self.config_file.write_text("{oops")

        assert Config.load(self.config_file) is not None

    def test_env_overrides_api_url(self, monkeypatch):
        monkeypatch.setenv(API_URL_ENV, "https://api.example.test/v1")

        assert Config.load(self.config_file).remote.api_url == "https://api.example.test/v1"

    def test_local_db_path(self):
        config = Config(local_db_path=str(self.temp_dir / "x.db"))
        assert config.get_local_db_path() == self.temp_dir / "x.db"
        assert Config().get_local_db_path().name == "local_store.db"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_creates_log_dir_and_quiets_libraries(self):
        log_dir = Path(tempfile.mkdtemp()) / "logs"

        setup_logging(debug=True, log_dir=log_dir)

        assert log_dir.is_dir()
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("apscheduler").level == logging.WARNING
