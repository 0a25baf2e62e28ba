"""Sync engine - keeps one user's dataset consistent between the local and remote stores.

Two protocols run per session:

Initialization (``start``), local first, then reconcile:
    1. Read the local snapshot synchronously and publish it.
    2. Fetch the remote snapshot in the background (bounded by a timeout).
    3. Adopt the remote dataset only if it is newer than the local one by
       more than the grace window, and cache it locally with the remote's
       own ``lastSynced``.
    4. Status becomes ``synced`` whatever happened; the session is ready.

Mutation (``commit``), on every change after initialization:
    1. Stamp the dataset with ``clock.now()``.
    2. Write the local snapshot (always, even if the remote write later fails).
    3. Push the compacted dataset to the remote store in the background.
    4. ``synced`` on success, ``local_only`` on failure or timeout.

Remote writes are serialized through a single pending slot: the worker
always pushes the newest dataset, one write in flight at a time, and a
result is ignored when a newer push is already queued.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from ..clock import SystemClock
from ..config import CompactionSettings, SyncSettings
from ..errors import SessionClosedError
from ..models import Dataset, Snapshot, SyncStatus
from .compaction import compact
from .protocols import ClockProtocol, LocalStoreProtocol, RemoteStoreProtocol

__all__ = ["SyncEngine", "SyncStats", "Mutator"]

logger = logging.getLogger(__name__)

Mutator = Callable[[Optional[Dataset]], Dataset]


@dataclass
class SyncStats:
    """Counters for one session."""

    remote_checked: bool = False
    remote_adopted: bool = False
    pushes_attempted: int = 0
    pushes_succeeded: int = 0
    pushes_failed: int = 0
    pushes_superseded: int = 0
    local_write_failures: int = 0


class SyncEngine:
    """Session-scoped owner of a user's working dataset and sync status.

    The display layer drives the engine from one thread. Remote calls run
    on a per-session worker thread; listeners registered with
    ``on_publish``/``on_status``/``on_warning`` may be called from that
    thread and must not block.
    """

    def __init__(
        self,
        user_id: str,
        local: LocalStoreProtocol,
        remote: RemoteStoreProtocol,
        clock: Optional[ClockProtocol] = None,
        settings: Optional[SyncSettings] = None,
        compaction: Optional[CompactionSettings] = None,
    ):
        self.user_id = user_id
        self.local = local
        self.remote = remote
        self.clock = clock or SystemClock()
        self.settings = settings or SyncSettings()
        self.compaction = compaction or CompactionSettings()
        self.stats = SyncStats()

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._ready = threading.Event()
        self._started = False
        self._closed = False

        self._dataset: Optional[Dataset] = None
        self._status = SyncStatus.SYNCED
        self._last_local_write: Optional[int] = None

        # Changes made while initialization is still reconciling; replayed
        # on top of whichever dataset turns out to be authoritative.
        self._base: Optional[Dataset] = None
        self._deferred: list[Mutator] = []

        # Single-slot push queue
        self._pending: Optional[Dataset] = None
        self._in_flight = False
        self._stalled: Optional[Future] = None

        self._executor = ThreadPoolExecutor(
            max_workers=4, thread_name_prefix=f"nutrisync-remote-{user_id}"
        )
        self._worker: Optional[threading.Thread] = None

        self._publish_listeners: list[Callable[[Optional[Dataset]], None]] = []
        self._status_listeners: list[Callable[[SyncStatus], None]] = []
        self._warning_listeners: list[Callable[[str], None]] = []

    # -- listeners ---------------------------------------------------------

    def on_publish(self, fn: Callable[[Optional[Dataset]], None]) -> None:
        """Call ``fn`` with every new working dataset (``None``: no dataset yet)."""
        self._publish_listeners.append(fn)

    def on_status(self, fn: Callable[[SyncStatus], None]) -> None:
        self._status_listeners.append(fn)

    def on_warning(self, fn: Callable[[str], None]) -> None:
        """Call ``fn`` with non-blocking warnings (e.g. local storage full)."""
        self._warning_listeners.append(fn)

    def _emit(self, listeners: list, value) -> None:
        for fn in list(listeners):
            try:
                fn(value)
            except Exception:
                logger.exception(f"Error in sync listener {getattr(fn, '__name__', fn)}")

    def _publish(self, dataset: Optional[Dataset]) -> None:
        self._dataset = dataset
        self._emit(self._publish_listeners, dataset)

    def _set_status(self, status: SyncStatus) -> None:
        if status != self._status:
            self._status = status
            logger.debug(f"Sync status for {self.user_id}: {status.value}")
            self._emit(self._status_listeners, status)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self._emit(self._warning_listeners, message)

    # -- state -------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    @property
    def dataset(self) -> Optional[Dataset]:
        with self._lock:
            return self._dataset

    @property
    def has_dataset(self) -> bool:
        return self.dataset is not None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_status(self) -> dict:
        """Get current sync status."""
        with self._lock:
            return {
                "user_id": self.user_id,
                "status": self._status.value,
                "ready": self._ready.is_set(),
                "has_dataset": self._dataset is not None,
                "push_pending": self._pending is not None or self._in_flight,
                "last_local_write": self._last_local_write,
                "stats": asdict(self.stats),
            }

    # -- initialization ----------------------------------------------------

    def start(self) -> Optional[Dataset]:
        """Publish local data immediately and reconcile with the remote in the background.

        Returns:
            The locally cached dataset, or ``None`` if the device has none.
        """
        with self._lock:
            if self._started:
                raise RuntimeError("SyncEngine.start() called twice")
            if self._closed:
                raise SessionClosedError(f"Session for {self.user_id} is closed")
            self._started = True

        local_snapshot = self.local.get(self.user_id)

        with self._lock:
            if local_snapshot is not None:
                logger.info(f"Loaded data for {self.user_id} from local cache")
                self._base = local_snapshot.dataset
                self._publish(local_snapshot.dataset)
            self._set_status(SyncStatus.SYNCING)

        self._worker = threading.Thread(
            target=self._run,
            args=(local_snapshot,),
            name=f"nutrisync-sync-{self.user_id}",
            daemon=True,
        )
        self._worker.start()
        return local_snapshot.dataset if local_snapshot else None

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until initialization has finished (or the session closed)."""
        return self._ready.wait(timeout)

    def _run(self, local_snapshot: Optional[Snapshot]) -> None:
        try:
            self._reconcile(local_snapshot)
        finally:
            self._finish_initialization()
        self._push_loop()

    def _reconcile(self, local_snapshot: Optional[Snapshot]) -> None:
        """Stale-while-revalidate: adopt the remote snapshot if it is clearly newer."""
        timeout = self.settings.remote_timeout_seconds
        try:
            remote_snapshot = self._executor.submit(self.remote.get, self.user_id).result(timeout)
        except FutureTimeout:
            logger.warning(f"Background remote check timed out after {timeout}s, keeping local data")
            return
        except Exception as e:
            logger.warning(f"Background remote check failed: {e}, keeping local data")
            return

        self.stats.remote_checked = True
        if remote_snapshot is None:
            logger.info(f"No remote snapshot for {self.user_id}")
            return

        local_time = local_snapshot.last_synced if local_snapshot else 0
        if remote_snapshot.last_synced <= local_time + self.settings.grace_ms:
            logger.info("Local data is up to date")
            return

        with self._lock:
            if self._closed:
                return
            logger.info(
                f"Found newer data on remote ({remote_snapshot.last_synced} > {local_time}), updating"
            )
            self.stats.remote_adopted = True
            self._base = remote_snapshot.dataset
            self._publish(remote_snapshot.dataset)
            # Cache exactly what was accepted, with the remote's own stamp
            result = self.local.set(self.user_id, remote_snapshot)
            if result.success:
                self._last_local_write = remote_snapshot.last_synced
            else:
                self.stats.local_write_failures += 1
                self._warn(f"Could not cache remote data on this device: {result.reason}")

    def _finish_initialization(self) -> None:
        with self._lock:
            if self._closed:
                self._ready.set()
                return

            deferred, self._deferred = self._deferred, []
            dataset = self._base
            replayed = 0
            for mutator in deferred:
                try:
                    dataset = mutator(dataset)
                    replayed += 1
                except Exception:
                    logger.exception("Dropping change made during initialization")

            self._set_status(SyncStatus.SYNCED)
            self._ready.set()

            if dataset is None:
                logger.info(f"No dataset for {self.user_id}, waiting for profile creation")
                self._publish(None)
            elif replayed:
                self._persist(dataset)
            elif dataset is not self._dataset:
                self._publish(dataset)
            self._changed.notify_all()

    # -- mutation ----------------------------------------------------------

    def commit(self, mutator: Mutator) -> Dataset:
        """Apply a change to the working dataset and sync it.

        Args:
            mutator: Pure function from the current dataset (``None`` before
                profile creation) to the new dataset. Exceptions it raises
                (e.g. invalid input) propagate and nothing is stored.

        Returns:
            The new working dataset.
        """
        with self._lock:
            if self._closed:
                raise SessionClosedError(f"Session for {self.user_id} is closed")

            dataset = mutator(self._dataset)

            if not self._ready.is_set():
                # Visible now, persisted once reconciliation settles
                self._deferred.append(mutator)
                self._publish(dataset)
                return dataset

            self._persist(dataset)
            return dataset

    def replace(self, dataset: Dataset) -> Dataset:
        """Replace the working dataset wholesale (e.g. after an import)."""
        return self.commit(lambda _current: dataset)

    def _persist(self, dataset: Dataset) -> None:
        """Mutation protocol: stamp, write locally, queue the remote push."""
        stamp = self.clock.now()
        self._publish(dataset)

        result = self.local.set(self.user_id, Snapshot(dataset=dataset, last_synced=stamp))
        if result.success:
            self._last_local_write = stamp
        else:
            self.stats.local_write_failures += 1
            self._warn(f"Changes kept in memory only, device storage failed: {result.reason}")

        self._pending = dataset
        self._set_status(SyncStatus.SYNCING)
        self._changed.notify_all()

    def resync(self) -> bool:
        """Re-push the current dataset (manual trigger or background retry).

        Runs the full mutation protocol, so the local snapshot is stamped no
        older than the remote write it triggers and a later session never
        mistakes the compacted remote copy for newer data.

        Returns:
            False if there is nothing to push yet.
        """
        with self._lock:
            if self._closed or not self._ready.is_set() or self._dataset is None:
                return False
            self._persist(self._dataset)
            return True

    # -- push worker -------------------------------------------------------

    def _push_loop(self) -> None:
        while True:
            with self._changed:
                while self._pending is None and not self._closed:
                    self._changed.wait()
                if self._closed:
                    return
                stalled = self._stalled

            # A timed-out write may still land; let it settle first so it
            # can never overwrite a newer one.
            if stalled is not None and not self._settle(stalled):
                continue

            with self._changed:
                if self._closed:
                    return
                dataset, self._pending = self._pending, None
                self._in_flight = True

            ok = self._push(dataset)

            with self._changed:
                self._in_flight = False
                if self._closed:
                    return
                if self._pending is None:
                    self._set_status(SyncStatus.SYNCED if ok else SyncStatus.LOCAL_ONLY)
                else:
                    self.stats.pushes_superseded += 1
                self._changed.notify_all()

    def _settle(self, stalled: Future) -> bool:
        try:
            stalled.result(self.settings.remote_timeout_seconds)
        except FutureTimeout:
            with self._lock:
                if not self._closed:
                    logger.warning("Previous remote write still hanging, changes kept locally")
                    self._set_status(SyncStatus.LOCAL_ONLY)
            return False
        except Exception as e:
            logger.debug(f"Abandoned remote write ended with error: {e}")
        with self._lock:
            self._stalled = None
        return True

    def _push(self, dataset: Dataset) -> bool:
        timeout = self.settings.remote_timeout_seconds
        self.stats.pushes_attempted += 1

        try:
            payload = compact(dataset, self.clock.now(), self.compaction)
            future = self._executor.submit(self.remote.set, self.user_id, payload)
            ok = bool(future.result(timeout))
        except FutureTimeout:
            logger.warning(f"Remote push timed out after {timeout}s")
            with self._lock:
                self._stalled = future
            ok = False
        except Exception as e:
            logger.warning(f"Remote push failed: {e}")
            ok = False

        if ok:
            self.stats.pushes_succeeded += 1
            logger.debug(f"Pushed dataset for {self.user_id}")
        else:
            self.stats.pushes_failed += 1
        return ok

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until initialization is done and no push is queued or in flight.

        Returns:
            True if the engine went idle within ``timeout``.
        """
        if not self._ready.wait(timeout):
            return False
        with self._changed:
            return self._changed.wait_for(
                lambda: self._closed or (self._pending is None and not self._in_flight),
                timeout,
            )

    # -- shutdown ----------------------------------------------------------

    def close(self) -> None:
        """End the session. Results of remote calls still in flight are discarded."""
        with self._changed:
            if self._closed:
                return
            self._closed = True
            self._pending = None
            self._deferred = []
            self._changed.notify_all()
        self._ready.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info(f"Sync session for {self.user_id} closed")

    def __enter__(self) -> "SyncEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
