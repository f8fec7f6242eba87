"""
waits.py — Deadlines and the bounded polling combinator used by every wait point.
"""

import time
from typing import Callable, Optional

from exceptions import DeadlineExceeded


class Deadline:
    """An absolute point in time a whole request must finish by."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def clamp(self, timeout: float) -> float:
        """The smaller of `timeout` and the time left."""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    def check(self, what: str = "request"):
        if self.expired:
            raise DeadlineExceeded(f"Deadline exceeded during {what}")


def poll_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    deadline: Optional[Deadline] = None,
) -> bool:
    """
    Call `predicate` every `interval` seconds until it returns True or
    `timeout` elapses (clamped by `deadline`). Returns the last predicate value.
    The predicate is always evaluated at least once.
    """
    if deadline is not None:
        timeout = deadline.clamp(timeout)
    end = clock() + timeout
    while True:
        if predicate():
            return True
        left = end - clock()
        if left <= 0:
            return False
        sleep(min(interval, left))


def settle(seconds: float, sleep: Callable[[float], None] = time.sleep, deadline: Optional[Deadline] = None):
    """Fixed pause, shortened if the deadline is closer."""
    if deadline is not None:
        seconds = deadline.clamp(seconds)
    if seconds > 0:
        sleep(seconds)
