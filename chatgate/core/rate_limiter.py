"""
Per-session sliding-window admission control.

Each session owns a window (deque of accepted request times) guarded by its own
lock, so concurrent requests for one session race only on that window and
exactly one caller can take the last free slot.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

from chatgate.core.config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger(__name__)


class _RateWindow:
    __slots__ = ("timestamps", "lock", "removed")

    def __init__(self) -> None:
        self.timestamps: deque[float] = deque()
        self.lock = threading.Lock()
        self.removed = False

    def prune(self, cutoff: float) -> None:
        # Concurrent callers may append out of order; filter the whole window.
        if any(ts < cutoff for ts in self.timestamps):
            self.timestamps = deque(ts for ts in self.timestamps if ts >= cutoff)


class AdmissionController:
    """At most ``max_requests`` accepted requests per session per ``window_seconds``."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _RateWindow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _window_for(self, session_id: str) -> _RateWindow:
        with self._lock:
            window = self._windows.get(session_id)
            if window is None:
                window = _RateWindow()
                self._windows[session_id] = window
            return window

    def allow(self, session_id: str, now: float | None = None) -> bool:
        """
        Prune expired entries, then accept iff fewer than ``max_requests`` remain.
        Accepted requests are recorded; rejections do not consume a slot.
        """
        while True:
            window = self._window_for(session_id)
            with window.lock:
                if window.removed:
                    continue
                stamp = self._clock() if now is None else now
                window.prune(stamp - self.window_seconds)
                if len(window.timestamps) >= self.max_requests:
                    logger.info(
                        "[rate_limiter:allow] DENY session_id=%s in_window=%d",
                        session_id[:16],
                        len(window.timestamps),
                    )
                    return False
                window.timestamps.append(stamp)
                return True

    def recorded(self, session_id: str) -> int:
        """Number of timestamps currently held for the session (no pruning)."""
        with self._lock:
            window = self._windows.get(session_id)
        if window is None:
            return 0
        with window.lock:
            return len(window.timestamps)

    def remove(self, session_id: str) -> None:
        with self._lock:
            window = self._windows.pop(session_id, None)
        if window is not None:
            with window.lock:
                window.removed = True

    def sweep(self, now: float | None = None) -> int:
        """Prune every window and drop the ones left empty. Returns windows removed."""
        now = self._clock() if now is None else now
        cutoff = now - self.window_seconds
        with self._lock:
            snapshot = list(self._windows.items())
        removed = 0
        for session_id, window in snapshot:
            with window.lock:
                window.prune(cutoff)
                if window.timestamps or window.removed:
                    continue
                with self._lock:
                    if self._windows.get(session_id) is window:
                        del self._windows[session_id]
                        window.removed = True
                        removed += 1
        return removed
