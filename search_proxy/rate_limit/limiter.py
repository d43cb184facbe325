"""
Per-client sliding-window rate limiter.

Every admission check prunes the client's history to the window ending at
``now``, records the attempt and compares the count with the limit. Rejected
attempts are recorded too, so a client hammering the proxy stays blocked until
it backs off for a full window.
"""

import threading
import time
from collections import deque
from typing import Deque, Dict, Optional

from search_proxy.vars import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_MS


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SlidingWindowRateLimiter:
    """
    In-memory sliding window, keyed by client identifier.

    The store is owned by the limiter instance (one per application), never by
    the module. A single lock guards it: the critical section is a handful of
    deque operations, and it keeps concurrent checks for the same identifier
    from losing updates whether they come from threads or asyncio tasks.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX,
        window_ms: float = RATE_LIMIT_WINDOW_MS,
    ) -> None:
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def admit(self, identifier: str, now: Optional[float] = None) -> bool:
        """Record an attempt by ``identifier`` and say whether it is within quota."""
        with self._lock:
            # Read the clock under the lock so each history stays ordered
            if now is None:
                now = monotonic_ms()
            window = self._windows.get(identifier)
            if window is None:
                window = self._windows[identifier] = deque()
            while window and now - window[0] >= self.window_ms:
                window.popleft()
            window.append(now)
            return len(window) <= self.max_requests

    def sweep(self, now: Optional[float] = None) -> int:
        """Forget identifiers whose latest attempt fell out of the window."""
        if now is None:
            now = monotonic_ms()
        with self._lock:
            stale = [
                identifier
                for identifier, window in self._windows.items()
                if not window or now - window[-1] >= self.window_ms
            ]
            for identifier in stale:
                del self._windows[identifier]
        return len(stale)

    def count(self, identifier: str) -> int:
        """Attempts currently held for ``identifier`` (as of its last check)."""
        with self._lock:
            window = self._windows.get(identifier)
            return len(window) if window else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
