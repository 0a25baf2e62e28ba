"""Account removal."""

import logging

from .errors import InvalidInputError
from .sync.protocols import LocalStoreProtocol, RemoteStoreProtocol

__all__ = ["remove_account", "RESERVED_USERS"]

logger = logging.getLogger(__name__)

RESERVED_USERS = frozenset({"admin"})


def remove_account(user_id: str, local: LocalStoreProtocol, remote: RemoteStoreProtocol) -> bool:
    """Delete both the local and the remote snapshot of ``user_id``.

    The local snapshot is removed even when the remote is unreachable.

    Raises:
        InvalidInputError: For a reserved account or an empty user id.

    Returns:
        True if the remote snapshot is gone.
    """
    if not user_id:
        raise InvalidInputError("No user given")
    if user_id in RESERVED_USERS:
        raise InvalidInputError(f"Account {user_id!r} cannot be removed")

    local.remove(user_id)
    try:
        removed = remote.remove(user_id)
    except Exception as e:
        logger.warning(f"Remote removal failed for {user_id}: {e}")
        removed = False

    if removed:
        logger.info(f"Removed account data for {user_id}")
    else:
        logger.warning(f"Removed local data for {user_id}; remote copy still present")
    return removed
