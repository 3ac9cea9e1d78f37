"""
In-memory fixed-window rate limiting
One limiter lives on app.state, so every request shares the same counters
"""

import logging
import time
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 60  # Drop expired windows at most once a minute


class RateLimiter:
    """Per-key request counters over fixed windows.

    Counters are guarded by a lock, so concurrent requests never let a key
    exceed its limit within a window.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = Lock()
        # Format: {key: [count, reset_at]}
        self._windows: dict[str, list] = {}
        self._last_cleanup = 0.0

    def check(self, key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
        """Count one hit for key.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        if limit <= 0:
            return True, 0

        now = self._clock()
        with self._lock:
            self._cleanup(now)

            entry = self._windows.get(key)
            if entry is None or now >= entry[1]:
                entry = [0, now + window_seconds]
                self._windows[key] = entry

            if entry[0] >= limit:
                retry_after = max(1, int(entry[1] - now + 0.999))
                logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {entry[0]}/{limit} requests used")
                return False, retry_after

            entry[0] += 1
            return True, 0

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        expired = [k for k, v in self._windows.items() if now >= v[1]]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug(f"🧹 Cleaned up {len(expired)} expired rate limit entries")
        self._last_cleanup = now
