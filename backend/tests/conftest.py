from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("FIRESIM_TICK_INTERVAL_MS", "50")

from firesim.engine import FireSimulationEngine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    from firesim.security.rate_limit import start_rate_limiter

    start_rate_limiter.clear()


@pytest.fixture
def client() -> Iterator[TestClient]:
    from firesim.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_engine() -> Callable[..., FireSimulationEngine]:
    def _make(width: int = 10, height: int = 10, **kwargs: Any) -> FireSimulationEngine:
        return FireSimulationEngine(width, height, **kwargs)

    return _make


@pytest.fixture
def start_payload() -> Callable[..., dict[str, Any]]:
    def _payload(map_id: str = "map-1", **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "map_id": map_id,
            "width": 12,
            "height": 10,
            "walls": [{"x": 6, "y": y, "hp": 30} for y in range(0, 4)],
            "sources": [{"x": 3, "y": 3, "intensity": 500}],
            "trucks": [{"id": "ac-1", "x": 0, "y": 0, "water": 2400}],
        }
        payload.update(overrides)
        return payload

    return _payload
