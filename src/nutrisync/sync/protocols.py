"""Protocol types for SyncEngine dependencies.

Defines the interfaces that SyncEngine requires from its collaborators,
enabling easier testing and looser coupling.
"""

from typing import Optional, Protocol, runtime_checkable

from ..models import Dataset, FoodFacts, Snapshot
from .local_store import StoreResult


@runtime_checkable
class ClockProtocol(Protocol):
    """Source of millisecond timestamps."""

    def now(self) -> int: ...


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """Synchronous on-device storage addressed by string key."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


@runtime_checkable
class LocalStoreProtocol(Protocol):
    """Full-fidelity per-user snapshot cache on the device."""

    def get(self, user_id: str) -> Optional[Snapshot]: ...

    def set(self, user_id: str, snapshot: Snapshot) -> StoreResult: ...

    def remove(self, user_id: str) -> None: ...


@runtime_checkable
class RemoteStoreProtocol(Protocol):
    """Remote store of record.

    ``set`` reports failure through its return value instead of raising and
    stamps ``lastSynced`` at write time.
    """

    def get(self, user_id: str) -> Optional[Snapshot]: ...

    def set(self, user_id: str, dataset: Dataset) -> bool: ...

    def remove(self, user_id: str) -> bool: ...


@runtime_checkable
class FoodAnalyzerProtocol(Protocol):
    """Produces nutrition facts from a meal photo; may raise."""

    def analyze(self, image: str) -> FoodFacts: ...
