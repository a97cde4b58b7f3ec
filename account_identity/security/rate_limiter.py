"""In-memory sliding window throttle for login and registration requests."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """Thread-safe per-key sliding window limiter for a single process."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = float(window_seconds)
        self._time = time_source
        self._events: defaultdict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def acquire(self, key: str) -> float:
        """Count a request against ``key``.

        Returns ``0.0`` when the request is admitted, otherwise the number of
        seconds until the oldest request in the window expires.
        """
        now = self._time()
        with self._lock:
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return max(queue[0] + self._window - now, 0.001)
            queue.append(now)
            return 0.0

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)
