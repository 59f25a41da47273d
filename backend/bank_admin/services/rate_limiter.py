from __future__ import annotations

import math
import time
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

MAX_REQUESTS_PER_WINDOW = 10
WINDOW_SECONDS = 60


class RequestRateLimiter:
    """Fixed-window request counter keyed by client address and path.

    Same per-process caveat as the login throttle: no cross-instance sharing.
    """

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        # key -> (count, window_resets_at)
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = Lock()

    def hit(self, client: str, path: str) -> Tuple[bool, Optional[int]]:
        """Count one request; return (allowed, retry_after_seconds_if_not)"""
        key = f"rate-limit:{client}:{path}"
        now = self._clock()
        with self._lock:
            count, resets_at = self._windows.get(key, (0, now + self._window_seconds))
            if now > resets_at:
                count, resets_at = 0, now + self._window_seconds
            count += 1
            self._windows[key] = (count, resets_at)

        if count > self._max_requests:
            return False, max(1, math.ceil(resets_at - now))
        return True, None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, (_, resets_at) in self._windows.items() if now > resets_at]
            for key in stale:
                self._windows.pop(key, None)
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


rate_limiter = RequestRateLimiter()
