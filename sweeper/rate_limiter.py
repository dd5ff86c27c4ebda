"""
Blocking rate limiter shared by every component that calls the chain node.

Uses a rolling one-second window: a caller that would exceed the ceiling
sleeps until the oldest call in the window expires.
"""
import threading
import time
from typing import Callable, List


class RateLimiter:
    def __init__(self, calls_per_second: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if calls_per_second <= 0:
            raise ValueError("calls_per_second must be positive")
        # Fractional rates widen the window instead of rounding the count to zero
        self.max_count = max(1, int(calls_per_second))
        self.window_seconds = self.max_count / calls_per_second
        self._clock = clock
        self._sleep = sleep
        self._timestamps: List[float] = []
        self._lock = threading.Lock()

    def _prune(self, now: float):
        cutoff = now - self.window_seconds
        self._timestamps = [t for t in self._timestamps if t > cutoff]

    def acquire(self):
        """Block until one more call is allowed, then record it"""
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.max_count:
                    self._timestamps.append(now)
                    return
                wait = self._timestamps[0] + self.window_seconds - now
            self._sleep(max(wait, 0.001))

    def remaining(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return max(0, self.max_count - len(self._timestamps))

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        return False
