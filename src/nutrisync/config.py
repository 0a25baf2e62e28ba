"""Configuration management for NutriSync."""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "RemoteSettings",
    "SyncSettings",
    "CompactionSettings",
    "setup_logging",
    "DEFAULT_API_URL",
    "GRACE_MS",
]

logger = logging.getLogger(__name__)

APP_NAME = "NutriSync"
APP_AUTHOR = "NutriLife"

# Remote store
DEFAULT_API_URL = "http://127.0.0.1:8001/api/v1"
API_URL_ENV = "NUTRISYNC_API_URL"

# Sync settings
GRACE_MS = 500  # clock-skew tolerance between local and remote producers
DEFAULT_REMOTE_TIMEOUT = 5.0  # seconds
DEFAULT_RETRY_INTERVAL = 60  # seconds
MIN_RETRY_INTERVAL = 10

# Compaction
DEFAULT_RETENTION_DAYS = 365
DEFAULT_IMAGE_RETENTION_DAYS = 7


@dataclass
class RemoteSettings:
    """Remote store connection settings."""

    backend: str = "simulated"  # "simulated" or "http"
    api_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    compress: bool = True  # gzip snapshot uploads
    read_latency_ms: int = 500  # simulated backend only
    write_latency_ms: int = 100  # simulated backend only


@dataclass
class SyncSettings:
    """Sync engine configuration."""

    grace_ms: int = GRACE_MS
    remote_timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT
    retry_interval_seconds: int = DEFAULT_RETRY_INTERVAL
    background_retry: bool = True


@dataclass
class CompactionSettings:
    """Retention policy applied before every remote write."""

    retention_days: int = DEFAULT_RETENTION_DAYS
    image_retention_days: int = DEFAULT_IMAGE_RETENTION_DAYS


@dataclass
class Config:
    """Main configuration object."""

    remote: RemoteSettings = field(default_factory=RemoteSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    compaction: CompactionSettings = field(default_factory=CompactionSettings)
    local_db_path: Optional[str] = None
    debug_mode: bool = False

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (local snapshot store, locks)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        """Get the config file path."""
        return cls.get_config_dir() / "config.json"

    def get_local_db_path(self) -> Path:
        """Path of the SQLite file backing the local store."""
        if self.local_db_path:
            return Path(self.local_db_path)
        return self.get_data_dir() / "local_store.db"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from file, or return defaults."""
        config_file = path or cls.get_config_file()
        config = cls()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                config = cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")

        env_url = os.getenv(API_URL_ENV)
        if env_url:
            config.remote.api_url = env_url
        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        remote_data = data.pop("remote", {}) or {}
        sync_data = data.pop("sync", {}) or {}
        compaction_data = data.pop("compaction", {}) or {}

        def _known(klass, values: dict) -> dict:
            return {k: v for k, v in values.items() if k in klass.__dataclass_fields__}

        sync = SyncSettings(**_known(SyncSettings, sync_data))
        sync.retry_interval_seconds = max(MIN_RETRY_INTERVAL, sync.retry_interval_seconds)

        return cls(
            remote=RemoteSettings(**_known(RemoteSettings, remote_data)),
            sync=sync,
            compaction=CompactionSettings(**_known(CompactionSettings, compaction_data)),
            **{k: v for k, v in data.items() if k in cls.__dataclass_fields__},
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Save config to file."""
        config_file = path or self.get_config_file()
        config_file.parent.mkdir(parents=True, exist_ok=True)

        data = asdict(self)
        with open(config_file, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Config saved to {config_file}")


def setup_logging(debug: bool = False, log_dir: Optional[Path] = None) -> None:
    """Configure logging."""
    log_dir = log_dir or Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "nutrisync.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
