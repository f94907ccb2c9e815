from __future__ import annotations

import math
from dataclasses import dataclass
from typing import cast

from . import physics_config as PhysicsCfg
from .schemas import GridPoint, TruckState

Grid = list[list[float]]
Cell = tuple[int, int]


def round_cell_value(value: float) -> float:
    # Halves round up, for negative values too.
    scale = 10**PhysicsCfg.CELL_VALUE_PRECISION
    return math.floor(value * scale + 0.5) / scale


@dataclass
class FireTruck:
    id: str
    x: float
    y: float
    water: float
    max_water: float
    nozzle_x: float | None = None
    nozzle_y: float | None = None
    hose_open: bool = False
    hydrant_connected: bool = False

    @property
    def has_nozzle(self) -> bool:
        return self.nozzle_x is not None and self.nozzle_y is not None

    @property
    def can_spray(self) -> bool:
        return self.hose_open and self.water > 0 and self.has_nozzle

    def refill_from_hydrant(
        self, rate: float = PhysicsCfg.HYDRANT_REFILL_PER_TICK
    ) -> float:
        if not self.hydrant_connected or self.hose_open:
            return 0.0
        refilled = min(self.max_water, self.water + rate)
        gained = refilled - self.water
        self.water = refilled
        return gained

    def consume_water(self, amount: float) -> None:
        self.water = max(0.0, self.water - amount)

    def to_state(self) -> TruckState:
        hose_end = (
            GridPoint(x=self.nozzle_x, y=self.nozzle_y) if self.has_nozzle else None
        )
        return TruckState(
            id=self.id,
            x=self.x,
            y=self.y,
            water=self.water,
            max_water=self.max_water,
            hose_open=self.hose_open,
            hydrant_connected=self.hydrant_connected,
            hose_end=hose_end,
        )


def is_path_blocked(grid: Grid, sx: float, sy: float, ex: float, ey: float) -> bool:
    height = len(grid)
    width = len(grid[0]) if height else 0
    steps = max(abs(ex - sx), abs(ey - sy))
    if steps == 0:
        return False

    # Endpoints are not sampled: the nozzle cell and the target cell never block.
    for step in range(1, math.ceil(steps)):
        tx = math.floor(sx + (ex - sx) * step / steps)
        ty = math.floor(sy + (ey - sy) * step / steps)
        if 0 <= tx < width and 0 <= ty < height and grid[ty][tx] < 0:
            return True
    return False


def find_nearest_burning_cell(grid: Grid, origin_x: float, origin_y: float) -> Cell | None:
    nearest: Cell | None = None
    nearest_distance = math.inf
    for y, row in enumerate(grid):
        for x, value in enumerate(row):
            if value <= 0:
                continue
            distance = math.hypot(x - origin_x, y - origin_y)
            if distance < nearest_distance:
                nearest_distance = distance
                nearest = (x, y)
    return nearest


def angle_delta(angle: float, reference: float) -> float:
    delta = angle - reference
    return math.atan2(math.sin(delta), math.cos(delta))


def is_inside_spray_cone(
    dx: float, dy: float, main_angle: float, half_spread: float, radius: float
) -> bool:
    distance = math.hypot(dx, dy)
    if distance > radius:
        return False
    delta = angle_delta(math.atan2(dy, dx), main_angle)
    return abs(delta) <= half_spread + PhysicsCfg.CONE_ANGLE_EPSILON


def apply_water_jet(
    truck: FireTruck,
    grid: Grid,
    sources: dict[Cell, float],
    active_water: set[Cell],
    radius: float = PhysicsCfg.SPRAY_RADIUS_CELLS,
    amount: float = PhysicsCfg.SUPPRESSION_PER_CELL,
    spread_deg: float = PhysicsCfg.SPRAY_SPREAD_DEG,
) -> float:
    if not truck.can_spray:
        return 0.0

    nozzle_x = cast(float, truck.nozzle_x)
    nozzle_y = cast(float, truck.nozzle_y)

    target = find_nearest_burning_cell(grid, nozzle_x, nozzle_y)
    if target is None:
        return 0.0

    main_angle = math.atan2(target[1] - nozzle_y, target[0] - nozzle_x)
    half_spread = math.radians(min(spread_deg, PhysicsCfg.SPRAY_SPREAD_MAX_DEG) / 2)
    source_amount = amount * PhysicsCfg.SOURCE_SUPPRESSION_FACTOR
    water_used = 0.0

    for y, row in enumerate(grid):
        for x, value in enumerate(row):
            if truck.water - water_used <= 0:
                truck.consume_water(water_used)
                return water_used
            if not is_inside_spray_cone(
                x - nozzle_x, y - nozzle_y, main_angle, half_spread, radius
            ):
                continue
            if value < 0:
                continue
            if is_path_blocked(grid, nozzle_x, nozzle_y, x, y):
                continue

            active_water.add((x, y))

            if value > 0:
                water_used += min(amount, value)
                row[x] = max(0.0, round_cell_value(value - amount))

            intensity = sources.get((x, y))
            if intensity is not None:
                sources[(x, y)] = max(0.0, intensity - source_amount)

    truck.consume_water(water_used)
    return water_used
