"""Wall-clock timestamps used for snapshot stamping."""

import threading
import time
from datetime import date, datetime

__all__ = ["SystemClock", "to_millis", "local_date"]


def to_millis(seconds: float) -> int:
    """Convert epoch seconds to integer milliseconds."""
    return int(seconds * 1000)


def local_date(timestamp_ms: int) -> date:
    """Calendar date of a timestamp in the device's local timezone."""
    return datetime.fromtimestamp(timestamp_ms / 1000).date()


class SystemClock:
    """Milliseconds since the Unix epoch, never going backwards.

    The wall clock can step backwards (NTP adjustments, manual changes);
    stamps handed out by one clock instance are clamped so they never
    decrease within the process.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def _wall(self) -> int:
        return to_millis(time.time())

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, self._wall())
            return self._last
