"""Exception types shared across NutriSync."""

__all__ = [
    "NutriSyncError",
    "DataShapeError",
    "LocalStoreError",
    "RemoteStoreError",
    "RemoteAuthError",
    "InvalidInputError",
    "InvalidImportError",
    "SessionClosedError",
]


class NutriSyncError(Exception):
    """Base class for NutriSync errors."""

    pass


class DataShapeError(NutriSyncError):
    """Stored or received data does not have the expected shape."""

    pass


class LocalStoreError(NutriSyncError):
    """On-device storage failed (quota exceeded, corrupt file, ...)."""

    pass


class RemoteStoreError(NutriSyncError):
    """Remote store request failed."""

    pass


class RemoteAuthError(RemoteStoreError):
    """Authentication error."""

    pass


class InvalidInputError(NutriSyncError, ValueError):
    """User input rejected before it reaches the sync engine."""

    pass


class InvalidImportError(NutriSyncError):
    """An import document is missing required fields or is malformed."""

    pass


class SessionClosedError(NutriSyncError):
    """The sync session was closed (logout) and accepts no more changes."""

    pass
