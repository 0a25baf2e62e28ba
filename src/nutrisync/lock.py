"""Per-user advisory lock: one running session per user on this device.

The lock file holds the owner's pid, so a refused caller can say who holds
it. The OS releases the lock if the owner dies without cleaning up.
"""

import logging
import os
import sys
from pathlib import Path
from typing import IO, Optional

from .config import Config

__all__ = ["SessionLock"]

logger = logging.getLogger(__name__)

if sys.platform == "win32":
    import msvcrt

    # msvcrt locks bytes from the current position; always lock byte 0
    def _try_lock(handle: IO) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock(handle: IO) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock(handle: IO) -> None:
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock(handle: IO) -> None:
        fcntl.flock(handle, fcntl.LOCK_UN)


class SessionLock:
    """Advisory lock file named after the user id."""

    def __init__(self, user_id: str, lock_dir: Optional[Path] = None):
        self.user_id = user_id
        self.path = Path(lock_dir or Config.get_data_dir()) / f".nutrisync-{user_id}.lock"
        self._handle: Optional[IO] = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def holder_pid(self) -> Optional[int]:
        """Pid recorded by the current holder, if readable."""
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return int(text) if text.isdigit() else None

    def acquire(self) -> bool:
        """Take the lock without blocking. Returns False if another session holds it."""
        if self._handle is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+", encoding="utf-8")  # noqa: SIM115
        try:
            _try_lock(handle)
        except OSError:
            handle.close()
            logger.info(f"Session lock for {self.user_id} is held by pid {self.holder_pid()}")
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        return True

    def release(self) -> None:
        """Drop the lock and remove the lock file."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            _unlock(handle)
        except OSError as e:
            logger.debug(f"Unlocking {self.path} failed: {e}")
        handle.close()
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> "SessionLock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
