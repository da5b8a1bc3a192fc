"""
Provides an adaptive rate limiter to avoid 429 "Too Many Requests" errors from the API.
"""

import logging
import threading
import time

log = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """
    Dynamically adjusts call rate based on API feedback (429 errors).

    Shared between worker threads, so all state sits behind a plain lock and
    waiting is done with `time.sleep` outside of it.
    """

    def __init__(
        self, initial_calls_per_second: float = 10.0, max_calls_per_second: float = 10.0
    ):
        """
        Initializes the rate limiter.

        Args:
            initial_calls_per_second: The starting rate of calls per second.
            max_calls_per_second: The maximum rate to recover to.
        """
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_interval = 1.0 / self._rate
        self._next_slot = 0.0
        self._last_429_time = 0.0
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        with self._lock:
            return self._rate

    def on_429(self) -> None:
        """
        Called when a 429 error is received. Halves the current request rate.
        """
        with self._lock:
            self._rate = max(0.5, self._rate * 0.5)
            self._min_interval = 1.0 / self._rate
            self._last_429_time = time.monotonic()
            log.warning(
                f"[yellow]Rate limit hit. New rate: {self._rate:.1f} calls/s[/yellow]"
            )

    def acquire(self) -> None:
        """
        Blocks if necessary to respect the current rate limit before allowing a call
        to proceed.
        """
        with self._lock:
            now = time.monotonic()
            # Gradually recover the rate if no 429 errors have occurred recently
            if self._last_429_time and now - self._last_429_time > 300:
                self._rate = min(self._max_rate, self._rate * 1.005)
                self._min_interval = 1.0 / self._rate

            slot = max(now, self._next_slot)
            self._next_slot = slot + self._min_interval
            delay = slot - now

        if delay > 0:
            time.sleep(delay)
