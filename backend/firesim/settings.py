from __future__ import annotations

import logging
import os


def parse_env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value.strip())
    except ValueError:
        return default


def parse_allowed_origins(raw_value: str) -> list[str]:
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


def parse_log_level(raw_value: str | None, default: str = "INFO") -> str:
    if raw_value is None:
        return default
    level_name = raw_value.strip().upper()
    if not isinstance(logging.getLevelName(level_name), int):
        return default
    return level_name


_tick_interval_ms = parse_env_int("FIRESIM_TICK_INTERVAL_MS", 200)
TICK_INTERVAL_SEC = max(20, min(5000, _tick_interval_ms)) / 1000.0

_max_grid_cells = parse_env_int("FIRESIM_MAX_GRID_CELLS", 250_000)
MAX_GRID_CELLS = max(1, _max_grid_cells)

_default_speed_n = parse_env_int("FIRESIM_DEFAULT_SPEED_N", 1)
DEFAULT_SPEED_N = max(1, min(1000, _default_speed_n))

LOG_LEVEL = parse_log_level(os.getenv("FIRESIM_LOG_LEVEL"))

ALLOWED_ORIGINS = parse_allowed_origins(
    os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000",
    )
)
ALLOWED_ORIGIN_REGEX = os.getenv(
    "ALLOWED_ORIGIN_REGEX",
    r"^http://(?:localhost|127\.0\.0\.1|0\.0\.0\.0|(?:\d{1,3}\.){3}\d{1,3})(?::\d{1,5})?$",
)

START_RATE_LIMIT_MAX_REQUESTS = max(1, parse_env_int("FIRESIM_START_RATE_LIMIT", 10))
START_RATE_LIMIT_WINDOW_SECONDS = 60
