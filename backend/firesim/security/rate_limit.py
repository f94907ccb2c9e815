from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import HTTPException, Request, status

from .. import settings


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> float | None:
        """Register a request; return seconds to wait when the key is over the limit."""
        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            timestamps = self._hits[key]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= self.max_requests:
                return max(0.0, self.window_seconds - (now - timestamps[0]))

            timestamps.append(now)
            return None

    def enforce(self, key: str, detail: str = "Too many requests") -> None:
        retry_after = self.hit(key)
        if retry_after is None:
            return
        retry_after_seconds = max(1, int(retry_after))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"{detail}. Retry in {retry_after_seconds}s",
            headers={"Retry-After": str(retry_after_seconds)},
        )

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()


def get_client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_dependency(
    limiter: SlidingWindowRateLimiter, bucket_name: str
) -> Callable[[Request], None]:
    def dependency(request: Request) -> None:
        limiter.enforce(f"{bucket_name}:{get_client_identifier(request)}")

    return dependency


start_rate_limiter = SlidingWindowRateLimiter(
    settings.START_RATE_LIMIT_MAX_REQUESTS,
    settings.START_RATE_LIMIT_WINDOW_SECONDS,
)
