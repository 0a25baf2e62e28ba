"""Bounded exponential backoff for remote store requests.

Remote calls already run under the sync engine's timeout, so the policy
here is short: a couple of quick retries rather than minutes of waiting.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

__all__ = ["RetryConfig", "RetryExhausted", "retry_with_backoff"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """How often and how patiently a transient failure is retried."""

    max_retries: int = 2
    base_delay: float = 0.25  # seconds
    max_delay: float = 2.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True  # +/- 25%

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-indexed)."""
        delay = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if self.jitter:
            delay += random.uniform(-0.25 * delay, 0.25 * delay)
        return max(0.0, delay)

    def delays(self) -> Iterator[float]:
        """Waits between attempts; one fewer than the number of attempts."""
        for attempt in range(self.max_retries):
            yield self.delay(attempt)


class RetryExhausted(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts")


def retry_with_backoff(
    func: Callable[[], T],
    config: Optional[RetryConfig] = None,
    retryable_exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or the retry budget runs out.

    Exceptions outside ``retryable_exceptions`` propagate immediately.

    Raises:
        RetryExhausted: Carrying the last retryable error.
    """
    config = config or RetryConfig()
    waits = config.delays()
    attempts = 0

    while True:
        attempts += 1
        try:
            return func()
        except retryable_exceptions as e:
            wait = next(waits, None)
            if wait is None:
                raise RetryExhausted(attempts, e) from e
            logger.warning(f"Attempt {attempts} failed: {e}, retrying in {wait:.2f}s")
            sleep(wait)
