"""On-device snapshot storage.

The local store keeps the full-fidelity dataset for each user under a
namespaced key. It is synchronous and treated as fast; a failure here is a
local resource problem (quota, corruption) and is reported as data, never
as a sync error.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

from ..errors import DataShapeError, LocalStoreError
from ..models import Snapshot

if TYPE_CHECKING:
    from .protocols import KeyValueStoreProtocol

__all__ = [
    "StoreResult",
    "SQLiteKeyValueStore",
    "MemoryKeyValueStore",
    "LocalStore",
    "local_key",
]

logger = logging.getLogger(__name__)

LOCAL_KEY_PREFIX = "nutrisync_local_v2_"


def local_key(user_id: str) -> str:
    """Storage key holding a user's local snapshot."""
    return f"{LOCAL_KEY_PREFIX}{user_id}"


@dataclass
class StoreResult:
    """Outcome of a local write."""

    success: bool
    reason: Optional[str] = None


class SQLiteKeyValueStore:
    """SQLite-backed string key-value store."""

    def __init__(self, db_path: Path, max_value_bytes: Optional[int] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
            max_value_bytes: Optional per-value size limit (quota)
        """
        self.db_path = db_path
        self.max_value_bytes = max_value_bytes
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            self._local.connection = sqlite3.connect(str(self.db_path))
        return self._local.connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database cursor."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Read failed for {key}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        if self.max_value_bytes is not None and len(value.encode("utf-8")) > self.max_value_bytes:
            raise LocalStoreError(f"Quota exceeded writing {key}")

        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as e:
            raise LocalStoreError(f"Write failed for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with self._cursor() as cursor:
                cursor.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise LocalStoreError(f"Delete failed for {key}: {e}") from e

    def keys(self) -> list[str]:
        with self._cursor() as cursor:
            cursor.execute("SELECT key FROM kv_store ORDER BY key")
            return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection


class MemoryKeyValueStore:
    """In-process key-value store with an optional total size quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self.quota_bytes is not None:
                used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
                if used + len(value.encode("utf-8")) > self.quota_bytes:
                    raise LocalStoreError(f"Quota exceeded writing {key}")
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class LocalStore:
    """Local Store Adapter: per-user snapshots on top of a key-value store."""

    def __init__(self, store: "KeyValueStoreProtocol"):
        self.store = store

    def get(self, user_id: str) -> Optional[Snapshot]:
        """Load a user's snapshot; unreadable or malformed data counts as absent."""
        try:
            raw = self.store.get(local_key(user_id))
        except LocalStoreError as e:
            logger.error(f"Local load error for {user_id}: {e}")
            return None
        if not raw:
            return None

        try:
            return Snapshot.from_dict(json.loads(raw))
        except (ValueError, DataShapeError) as e:
            logger.warning(f"Ignoring malformed local snapshot for {user_id}: {e}")
            return None

    def set(self, user_id: str, snapshot: Snapshot) -> StoreResult:
        """Save a user's snapshot. Never raises; a failed write changes nothing."""
        try:
            payload = json.dumps(snapshot.to_dict())
            self.store.set(local_key(user_id), payload)
        except LocalStoreError as e:
            logger.error(f"Local save error for {user_id} (quota exceeded?): {e}")
            return StoreResult(success=False, reason=str(e))
        return StoreResult(success=True)

    def remove(self, user_id: str) -> None:
        try:
            self.store.delete(local_key(user_id))
        except LocalStoreError as e:
            logger.error(f"Local remove error for {user_id}: {e}")
