"""Sync module - local/remote snapshot stores and the engine reconciling them."""

from .compaction import compact
from .local_store import LocalStore, MemoryKeyValueStore, SQLiteKeyValueStore, StoreResult
from .remote_store import HttpRemoteStore, SimulatedRemoteStore
from .retry import RetryConfig, retry_with_backoff
from .protocols import (
    ClockProtocol,
    FoodAnalyzerProtocol,
    KeyValueStoreProtocol,
    LocalStoreProtocol,
    RemoteStoreProtocol,
)
from .sync_engine import SyncEngine, SyncStats
from .coordinator import SyncCoordinator

__all__ = [
    "compact",
    "LocalStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "StoreResult",
    "HttpRemoteStore",
    "SimulatedRemoteStore",
    "RetryConfig",
    "retry_with_backoff",
    "ClockProtocol",
    "FoodAnalyzerProtocol",
    "KeyValueStoreProtocol",
    "LocalStoreProtocol",
    "RemoteStoreProtocol",
    "SyncEngine",
    "SyncStats",
    "SyncCoordinator",
]
