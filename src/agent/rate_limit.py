from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after_seconds: Optional[int] = None


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


class RateLimiter:
    """
    Fixed-window limiter: at most ``max_requests`` admissions per user per
    window. An expired window is replaced, not slid, so bursts straddling a
    boundary can briefly exceed the ceiling.

    The table lives in process memory; a multi-instance deployment should put
    an external counter store behind the same ``admit`` interface.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def admit(self, user_id: str) -> Admission:
        now = self._clock()
        with self._lock:
            window = self._windows.get(user_id)
            if window is None or now > window.reset_at:
                self._windows[user_id] = RateLimitWindow(count=1, reset_at=now + self.window_seconds)
                return Admission(allowed=True)

            if window.count >= self.max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                return Admission(allowed=False, retry_after_seconds=retry_after)

            window.count += 1
            return Admission(allowed=True)

    def sweep(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [user_id for user_id, window in self._windows.items() if now > window.reset_at]
            for user_id in expired:
                del self._windows[user_id]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    async def run_sweeper(self, interval_seconds: float = 300) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug("Rate limiter sweep removed %d expired windows", removed)
