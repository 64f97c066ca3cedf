from __future__ import annotations

import threading
import time
from typing import Callable, Deque, Dict, Optional

from listing_reference.models import RateWindow

ANONYMOUS_CLIENT = "anonymous"
HOUR_SECONDS = 3600.0


def _client_key(client_id: Optional[str]) -> str:
    # Unknown callers share one bucket instead of skipping the limiter.
    key = (client_id or "").strip()
    return key or ANONYMOUS_CLIENT


def _trim(stamps: Deque[float], cutoff: float) -> None:
    while stamps and stamps[0] <= cutoff:
        stamps.popleft()


class RateLimiter:
    """Sliding-window admission control, one window per client id.

    With `hourly_limit` set, a second window caps each client per hour on
    top of the short window. Windows are created on the first admitted call
    only; read-only queries never add clients.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_ms: int = 60_000,
        clock: Optional[Callable[[], float]] = None,
        hourly_limit: int = 0,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if hourly_limit < 0:
            raise ValueError("hourly_limit must be >= 0")
        self.max_requests = max_requests
        self.window = window_ms / 1000.0
        self.hourly_limit = hourly_limit
        self._clock = clock or time.monotonic
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _window(self, client: str, now: float, create: bool = False) -> Optional[RateWindow]:
        window = self._windows.get(client)
        if window is None:
            if not create:
                return None
            window = RateWindow(client_id=client)
            self._windows[client] = window
        _trim(window.timestamps, now - self.window)
        _trim(window.hourly, now - HOUR_SECONDS)
        return window

    def _wait(self, window: Optional[RateWindow], now: float) -> float:
        """Seconds until `window` admits again, 0.0 when it already does."""
        if window is None:
            return 0.0
        wait = 0.0
        if len(window.timestamps) >= self.max_requests:
            wait = window.timestamps[0] + self.window - now
        if self.hourly_limit and len(window.hourly) >= self.hourly_limit:
            wait = max(wait, window.hourly[0] + HOUR_SECONDS - now)
        return max(0.0, wait)

    def _admits(self, window: Optional[RateWindow]) -> bool:
        if window is None:
            return True
        if len(window.timestamps) >= self.max_requests:
            return False
        return not (self.hourly_limit and len(window.hourly) >= self.hourly_limit)

    def _append(self, window: RateWindow, now: float) -> None:
        window.timestamps.append(now)
        if self.hourly_limit:
            window.hourly.append(now)

    def is_allowed(self, client_id: Optional[str]) -> bool:
        with self._lock:
            return self._admits(self._window(_client_key(client_id), self._clock()))

    def record(self, client_id: Optional[str]) -> None:
        with self._lock:
            now = self._clock()
            self._append(self._window(_client_key(client_id), now, create=True), now)

    def check(self, client_id: Optional[str]) -> bool:
        """Admit and record in one step; a rejected call records nothing."""
        with self._lock:
            now = self._clock()
            client = _client_key(client_id)
            if not self._admits(self._window(client, now)):
                return False
            self._append(self._window(client, now, create=True), now)
            return True

    def retry_after(self, client_id: Optional[str]) -> float:
        with self._lock:
            now = self._clock()
            return self._wait(self._window(_client_key(client_id), now), now)

    def recent_requests(self, client_id: Optional[str]) -> int:
        with self._lock:
            window = self._window(_client_key(client_id), self._clock())
            return 0 if window is None else len(window.timestamps)

    def purge_idle(self) -> int:
        with self._lock:
            now = self._clock()
            idle = []
            for client in list(self._windows):
                window = self._window(client, now)
                if not window.timestamps and not window.hourly:
                    idle.append(client)
            for client in idle:
                del self._windows[client]
            return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
