"""Remote store adapters - the store of record for cross-device recovery.

Both adapters follow the same contract: ``get`` returns a :class:`Snapshot`
or ``None``; ``set`` stamps ``lastSynced`` at write time and returns a
success flag instead of raising, so callers can treat failure as data.
"""

import json
import logging
import threading
import time
from typing import Optional

from ..clock import SystemClock
from ..errors import DataShapeError, LocalStoreError, RemoteStoreError
from ..models import Dataset, Snapshot
from .http_client import NotFound, RemoteApiClient
from .local_store import MemoryKeyValueStore
from .protocols import ClockProtocol, KeyValueStoreProtocol

__all__ = [
    "SimulatedRemoteStore",
    "HttpRemoteStore",
    "CLOUD_DB_KEY",
]

logger = logging.getLogger(__name__)

CLOUD_DB_KEY = "nutrisync_cloud_database_v1"


class SimulatedRemoteStore:
    """Remote store simulated on top of a key-value store.

    The whole "server" is one JSON document mapping user id to snapshot,
    kept under :data:`CLOUD_DB_KEY`. Reads and writes sleep to mimic network
    latency, and ``online``/``fail_writes`` inject failures.
    """

    def __init__(
        self,
        store: Optional[KeyValueStoreProtocol] = None,
        clock: Optional[ClockProtocol] = None,
        read_latency: float = 0.5,
        write_latency: float = 0.1,
    ):
        """Initialize the simulated remote.

        Args:
            store: Backing key-value store (in-memory by default)
            clock: Clock used to stamp ``lastSynced`` at write time
            read_latency: Seconds each ``get`` takes
            write_latency: Seconds each ``set`` takes
        """
        self.store = store or MemoryKeyValueStore()
        self.clock = clock or SystemClock()
        self.read_latency = read_latency
        self.write_latency = write_latency
        self.online = True
        self.fail_writes = False
        # read-modify-write of the shared document must not interleave
        self._lock = threading.Lock()

    def _load_db(self) -> dict:
        raw = self.store.get(CLOUD_DB_KEY)
        if not raw:
            return {}
        db = json.loads(raw)
        if not isinstance(db, dict):
            raise DataShapeError("cloud database is not an object")
        return db

    def _check_online(self) -> None:
        if not self.online:
            raise RemoteStoreError("Network unreachable")

    def get(self, user_id: str) -> Optional[Snapshot]:
        """PULL: fetch the user's snapshot, ``None`` if absent or unreadable."""
        time.sleep(self.read_latency)
        self._check_online()

        try:
            with self._lock:
                raw = self._load_db().get(user_id)
        except (ValueError, DataShapeError, LocalStoreError) as e:
            logger.error(f"Cloud sync error (pull): {e}")
            return None
        if raw is None:
            return None

        try:
            return Snapshot.from_dict(raw)
        except DataShapeError as e:
            logger.warning(f"Ignoring malformed remote snapshot for {user_id}: {e}")
            return None

    def set(self, user_id: str, dataset: Dataset) -> bool:
        """PUSH: store the dataset stamped with the current time."""
        time.sleep(self.write_latency)
        if not self.online or self.fail_writes:
            logger.warning(f"Cloud sync error (push): remote unavailable for {user_id}")
            return False

        try:
            with self._lock:
                db = self._load_db()
                db[user_id] = Snapshot(dataset=dataset, last_synced=self.clock.now()).to_dict()
                payload = json.dumps(db)
                self.store.set(CLOUD_DB_KEY, payload)
        except (ValueError, DataShapeError, LocalStoreError) as e:
            logger.error(f"Cloud sync error (push): {e}")
            return False

        size_kb = len(payload.encode("utf-8")) / 1024
        logger.debug(f"Cloud save for {user_id} done, DB size {size_kb:.2f} KB")
        return True

    def remove(self, user_id: str) -> bool:
        """Delete the user's snapshot from the simulated server."""
        if not self.online:
            return False
        try:
            with self._lock:
                db = self._load_db()
                if db.pop(user_id, None) is not None:
                    self.store.set(CLOUD_DB_KEY, json.dumps(db))
        except (ValueError, DataShapeError, LocalStoreError) as e:
            logger.error(f"Cloud remove error for {user_id}: {e}")
            return False
        return True


class HttpRemoteStore:
    """Remote store reached over the NutriSync HTTP API.

    Endpoints (relative to the API URL):
        GET    users/<id>/snapshot  -> snapshot JSON, 404 if none
        PUT    users/<id>/snapshot  <- snapshot JSON (gzip when enabled)
        DELETE users/<id>/snapshot
    """

    def __init__(self, client: RemoteApiClient, clock: Optional[ClockProtocol] = None):
        self.client = client
        self.clock = clock or SystemClock()

    @staticmethod
    def _endpoint(user_id: str) -> str:
        return f"users/{user_id}/snapshot"

    def get(self, user_id: str) -> Optional[Snapshot]:
        """Fetch the user's snapshot.

        Raises:
            RemoteStoreError: On network or server failure, so callers can
                tell "unreachable" apart from "no data".
        """
        try:
            data = self.client.request("GET", self._endpoint(user_id))
        except NotFound:
            return None

        try:
            return Snapshot.from_dict(data)
        except DataShapeError as e:
            logger.warning(f"Ignoring malformed remote snapshot for {user_id}: {e}")
            return None

    def set(self, user_id: str, dataset: Dataset) -> bool:
        snapshot = Snapshot(dataset=dataset, last_synced=self.clock.now())
        try:
            self.client.request("PUT", self._endpoint(user_id), data=snapshot.to_dict(), compress=True)
        except RemoteStoreError as e:
            logger.warning(f"Cloud sync error (push) for {user_id}: {e}")
            return False
        return True

    def remove(self, user_id: str) -> bool:
        try:
            self.client.request("DELETE", self._endpoint(user_id))
        except NotFound:
            return True
        except RemoteStoreError as e:
            logger.warning(f"Cloud remove error for {user_id}: {e}")
            return False
        return True

    def close(self) -> None:
        self.client.close()
