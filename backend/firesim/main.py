from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import settings
from .engine import FireSimulationEngine
from .errors import FireSimError
from .schemas import (
    FireSimSnapshot,
    PlaceTruckRequest,
    ResetSimulationRequest,
    SetSourceRequest,
    StartSimulationRequest,
)
from .security.rate_limit import rate_limit_dependency, start_rate_limiter
from .ws import simulation_sessions, ws_router

logging.getLogger("firesim").setLevel(settings.LOG_LEVEL)

app = FastAPI(title="Fire command-post simulator", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_origin_regex=settings.ALLOWED_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.include_router(ws_router)

start_rate_limit = rate_limit_dependency(start_rate_limiter, "firesim_start")


@app.exception_handler(FireSimError)
async def fire_sim_error_handler(request: Request, exc: FireSimError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await simulation_sessions.shutdown()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post(
    "/firesim/start",
    response_model=FireSimSnapshot,
    dependencies=[Depends(start_rate_limit)],
)
async def start_simulation(payload: StartSimulationRequest) -> FireSimSnapshot:
    session = await simulation_sessions.start(payload)
    return session.latest_snapshot


@app.post("/firesim/reset")
async def reset_simulation(payload: ResetSimulationRequest) -> dict[str, Any]:
    was_running = await simulation_sessions.reset(payload.map_id)
    return {"status": "ok", "map_id": payload.map_id, "was_running": was_running}


@app.get("/firesim/state", response_model=FireSimSnapshot)
def get_simulation_state(
    map_id: str = Query(min_length=1, max_length=128),
) -> FireSimSnapshot:
    return simulation_sessions.latest_snapshot(map_id)


@app.post("/firesim/set_source", response_model=FireSimSnapshot)
async def set_source(payload: SetSourceRequest) -> FireSimSnapshot:
    session = simulation_sessions.get(payload.map_id)

    def mutation(engine: FireSimulationEngine) -> FireSimSnapshot:
        engine.set_source(payload.x, payload.y, payload.intensity)
        return engine.to_snapshot()

    return await session.apply(mutation)


@app.post("/firesim/place_truck", response_model=FireSimSnapshot)
async def place_truck(payload: PlaceTruckRequest) -> FireSimSnapshot:
    session = simulation_sessions.get(payload.map_id)

    def mutation(engine: FireSimulationEngine) -> FireSimSnapshot:
        engine.place_truck(
            payload.id, payload.x, payload.y, payload.water, payload.max_water
        )
        return engine.to_snapshot()

    return await session.apply(mutation)
