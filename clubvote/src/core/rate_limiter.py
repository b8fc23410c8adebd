import time
from collections import defaultdict, deque

from config import settings


class RateLimiter:
    """Sliding-window limiter keyed by an arbitrary caller key."""

    def __init__(self, limit: int, window_seconds: float = 60.0) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._windows: dict[str, deque[float]] = defaultdict(deque)
        self._last_sweep = time.monotonic()

    def is_allowed(self, key: str) -> bool:
        now = time.monotonic()
        cutoff = now - self.window_seconds
        self._sweep(now, cutoff)
        window = self._windows[key]

        while window and window[0] <= cutoff:
            window.popleft()

        if len(window) >= self.limit:
            return False

        window.append(now)
        return True

    def _sweep(self, now: float, cutoff: float) -> None:
        # Keys are caller-supplied; drop the ones whose window has emptied
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in [k for k, w in self._windows.items() if not w or w[-1] <= cutoff]:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()


vote_rate_limiter = RateLimiter(settings.RATE_LIMIT_PER_MINUTE)
