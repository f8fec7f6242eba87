"""
rate_limiter.py — Minimum spacing between outbound calls to one target.
"""

import random
import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """
    Enforces at least `min_interval` seconds between consecutive wait() returns.
    The first call never sleeps. Safe to share between threads.
    """

    def __init__(
        self,
        min_interval: float,
        jitter: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self.jitter = jitter
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next call is allowed. Returns the time slept."""
        with self._lock:
            slept = 0.0
            if self._last is not None:
                interval = self.min_interval
                if self.jitter:
                    interval += random.uniform(0, self.jitter)
                remaining = interval - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last = self._clock()
            return slept

    def reset(self):
        with self._lock:
            self._last = None
