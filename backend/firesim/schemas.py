from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from . import physics_config as PhysicsCfg


class GridPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


# ── Snapshot ─────────────────────────────────────────────────────────────────


class SourceState(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    intensity: float


class ActiveWaterCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int


class TruckState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    x: float
    y: float
    water: float
    max_water: float
    hose_open: bool
    hydrant_connected: bool
    hose_end: GridPoint | None = None


class FireSimSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticks: int
    width: int
    height: int
    grid: tuple[tuple[float, ...], ...]
    sources: tuple[SourceState, ...] = ()
    active_water: tuple[ActiveWaterCell, ...] = ()
    trucks: tuple[TruckState, ...] = ()

    def cell(self, x: int, y: int) -> float:
        return self.grid[y][x]

    def truck(self, truck_id: str) -> TruckState | None:
        for truck in self.trucks:
            if truck.id == truck_id:
                return truck
        return None

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ── Layout (start contract) ──────────────────────────────────────────────────


class InputModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False, str_strip_whitespace=True)


class WallPlacement(InputModel):
    x: int
    y: int
    hp: float = PhysicsCfg.WALL_DEFAULT_HIT_POINTS


class SourcePlacement(InputModel):
    x: int
    y: int
    intensity: float = Field(default=PhysicsCfg.SOURCE_DEFAULT_INTENSITY, gt=0)


class TruckPlacement(InputModel):
    id: str = Field(min_length=1, max_length=128)
    x: float
    y: float
    water: float = Field(default=PhysicsCfg.TRUCK_DEFAULT_WATER, ge=0)
    max_water: float | None = Field(default=None, ge=0)


# ── REST request bodies ──────────────────────────────────────────────────────


class MapRequest(InputModel):
    map_id: str = Field(min_length=1, max_length=128)


class StartSimulationRequest(MapRequest):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    walls: list[WallPlacement] = Field(default_factory=list)
    sources: list[SourcePlacement] = Field(default_factory=list)
    trucks: list[TruckPlacement] = Field(default_factory=list)
    speed_n: int | None = Field(default=None, ge=1, le=1000)


class ResetSimulationRequest(MapRequest):
    pass


class SourcePayload(InputModel):
    x: int
    y: int
    intensity: float = Field(default=PhysicsCfg.SOURCE_DEFAULT_INTENSITY, gt=0)


class SetSourceRequest(MapRequest, SourcePayload):
    pass


class PlaceTruckRequest(MapRequest, TruckPlacement):
    pass


# ── Realtime command payloads ────────────────────────────────────────────────


class TruckCommandPayload(InputModel):
    truck_id: str = Field(min_length=1, max_length=128)


class HoseUpdatePayload(TruckCommandPayload):
    nozzle_x: float
    nozzle_y: float
    is_open: bool


class HydrantUpdatePayload(TruckCommandPayload):
    connected: bool
