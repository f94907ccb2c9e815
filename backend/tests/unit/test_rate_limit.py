from __future__ import annotations

import pytest
from fastapi import HTTPException

from firesim.security.rate_limit import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_rate_limit_blocks_burst_and_recovers() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(3, 10, clock=clock)

    for _ in range(3):
        assert limiter.hit("client") is None
    assert limiter.hit("client") == pytest.approx(10)

    clock.now += 4
    assert limiter.hit("client") == pytest.approx(6)

    clock.now += 6
    assert limiter.hit("client") is None


def test_rate_limit_keys_are_independent() -> None:
    limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())

    assert limiter.hit("a") is None
    assert limiter.hit("b") is None
    assert limiter.hit("a") is not None


def test_enforce_raises_429_with_retry_after() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(1, 30, clock=clock)
    limiter.enforce("client")

    with pytest.raises(HTTPException) as exc_info:
        limiter.enforce("client", "Too many starts")

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "30"}
    assert str(exc_info.value.detail).startswith("Too many starts")


def test_clear_resets_all_keys() -> None:
    limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
    limiter.hit("a")
    limiter.hit("b")

    limiter.clear()

    assert limiter.hit("a") is None
    assert limiter.hit("b") is None
