"""
In-memory sliding-window rate limiter per key (client IP).
Applied to /api/auth/login and /api/auth/callback to blunt login-flow abuse.
"""
import math
import threading
import time

from fastapi import HTTPException, Request

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = _WINDOW_SECONDS, clock=time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _sweep(self, cutoff: float) -> None:
        """Drop keys with no hit inside the window. Caller holds the lock."""
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Record a hit if under the limit. Returns (allowed, retry_after_seconds);
        retry_after is >= 1 when not allowed. A limit <= 0 disables limiting.
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            # At most once per window, so idle clients do not accumulate
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = [t for t in self._hits.get(key, ()) if t > cutoff]
            if len(hits) >= self.limit:
                self._hits[key] = hits
                retry_after = max(1, math.ceil(self.window_seconds - (now - min(hits))))
                return False, retry_after
            hits.append(now)
            self._hits[key] = hits
            return True, None

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def client_ip(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return request.client.host


def enforce(limiter: SlidingWindowLimiter, request: Request, scope: str) -> None:
    """Raise 429 with Retry-After when the caller's IP is over the limit for this scope."""
    allowed, retry_after = limiter.check_and_consume(f"{scope}:{client_ip(request)}")
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail={"error": "too_many_requests"},
            headers={"Retry-After": str(retry_after)},
        )
