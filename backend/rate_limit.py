import math
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

DEFAULT_MAX_REQUESTS = 5
DEFAULT_WINDOW_SECONDS = 60 * 60


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


@dataclass
class RateLimitEntry:
    count: int
    window_start: float


class RateLimiter:
    """Decides whether one more request from ``key`` may go through."""

    def check(self, key: str) -> RateLimitDecision:
        raise NotImplementedError


class FixedWindowRateLimiter(RateLimiter):
    """In-process fixed-window counter.

    Every call counts against the key, whatever happens to the request
    afterwards. Windows expire lazily on the next call for that key; there is
    no background sweep. State is lost on restart.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitDecision:
        key = key or "unknown"
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start > self.window_seconds:
                self._entries[key] = RateLimitEntry(count=1, window_start=now)
                return RateLimitDecision(allowed=True)

            if entry.count >= self.max_requests:
                remaining = entry.window_start + self.window_seconds - now
                return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(remaining)))

            entry.count += 1
            return RateLimitDecision(allowed=True)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)


def limiter_from_env() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        max_requests=int(os.environ.get("REGISTRATION_RATE_LIMIT_MAX", DEFAULT_MAX_REQUESTS)),
        window_seconds=float(os.environ.get("REGISTRATION_RATE_LIMIT_WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS)),
    )
