"""
Grid fire simulation: heat sources, synchronous heat diffusion, wall erosion,
hydrant refill and water-jet suppression, advanced one tick per update().

Grid is row-major (grid[y][x]); > 0 burning, == 0 empty, < 0 wall.
Not thread-safe and not reentrant: the owner serializes every call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from . import physics_config as PhysicsCfg
from .errors import InvalidConfigurationError, OutOfBoundsError, UnknownTruckError
from .schemas import (
    ActiveWaterCell,
    FireSimSnapshot,
    SourcePlacement,
    SourceState,
    TruckPlacement,
    WallPlacement,
)
from .trucks import Cell, FireTruck, Grid, apply_water_jet, round_cell_value

logger = logging.getLogger(__name__)


def make_grid(width: int, height: int) -> Grid:
    return [[0.0] * width for _ in range(height)]


class FireSimulationEngine:
    def __init__(
        self,
        width: int,
        height: int,
        speed_n: int = 1,
        max_cells: int | None = None,
        spread_deg: float = PhysicsCfg.SPRAY_SPREAD_DEG,
    ) -> None:
        if width <= 0 or height <= 0:
            raise InvalidConfigurationError(
                f"Grid size must be positive, got {width}x{height}"
            )
        if max_cells is not None and width * height > max_cells:
            raise InvalidConfigurationError(
                f"Grid {width}x{height} exceeds the limit of {max_cells} cells"
            )
        self.width = width
        self.height = height
        self.speed_n = 1
        self.set_speed(speed_n)
        self.spread_deg = spread_deg
        self.ticks = 0

        self.grid: Grid = make_grid(width, height)
        self._next_grid: Grid = make_grid(width, height)
        self.sources: dict[Cell, float] = {}
        self.active_water: set[Cell] = set()
        self.trucks: dict[str, FireTruck] = {}

    @classmethod
    def from_layout(
        cls,
        width: int,
        height: int,
        walls: Iterable[WallPlacement] = (),
        sources: Iterable[SourcePlacement] = (),
        trucks: Iterable[TruckPlacement] = (),
        speed_n: int = 1,
        max_cells: int | None = None,
    ) -> FireSimulationEngine:
        engine = cls(width, height, speed_n=speed_n, max_cells=max_cells)
        engine.load_layout(walls, sources, trucks)
        return engine

    # ── Bounds ───────────────────────────────────────────────────────────────

    def in_bounds(self, x: float, y: float) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def require_in_bounds(self, x: float, y: float) -> None:
        if not self.in_bounds(x, y):
            raise OutOfBoundsError(x, y, self.width, self.height)

    def get_truck(self, truck_id: str) -> FireTruck:
        truck = self.trucks.get(truck_id)
        if truck is None:
            raise UnknownTruckError(truck_id)
        return truck

    # ── Setup ────────────────────────────────────────────────────────────────

    def set_speed(self, speed_n: int) -> None:
        if speed_n < 1:
            raise InvalidConfigurationError(
                f"Speed divisor must be at least 1, got {speed_n}"
            )
        self.speed_n = speed_n

    def set_wall(
        self, x: int, y: int, hit_points: float = PhysicsCfg.WALL_DEFAULT_HIT_POINTS
    ) -> None:
        self.require_in_bounds(x, y)
        magnitude = abs(hit_points) if hit_points != 0 else PhysicsCfg.WALL_DEFAULT_HIT_POINTS
        self.sources.pop((x, y), None)
        self.grid[y][x] = -magnitude

    def set_source(
        self, x: int, y: int, intensity: float = PhysicsCfg.SOURCE_DEFAULT_INTENSITY
    ) -> None:
        self.require_in_bounds(x, y)
        self.sources[(x, y)] = intensity
        self.grid[y][x] = intensity

    def remove_source(self, x: int, y: int) -> bool:
        self.require_in_bounds(x, y)
        if self.sources.pop((x, y), None) is None:
            return False
        self.grid[y][x] = 0.0
        return True

    def load_layout(
        self,
        walls: Iterable[WallPlacement] = (),
        sources: Iterable[SourcePlacement] = (),
        trucks: Iterable[TruckPlacement] = (),
    ) -> None:
        walls = list(walls)
        sources = list(sources)
        trucks = list(trucks)
        for item in [*walls, *sources, *trucks]:
            self.require_in_bounds(item.x, item.y)

        for wall in walls:
            self.set_wall(wall.x, wall.y, wall.hp)
        for source in sources:
            self.set_source(source.x, source.y, source.intensity)
        for truck in trucks:
            self.place_truck(truck.id, truck.x, truck.y, truck.water, truck.max_water)

    # ── Trucks ───────────────────────────────────────────────────────────────

    def place_truck(
        self,
        truck_id: str,
        x: float,
        y: float,
        water: float = PhysicsCfg.TRUCK_DEFAULT_WATER,
        max_water: float | None = None,
    ) -> FireTruck:
        self.require_in_bounds(x, y)
        capacity = water if max_water is None else max_water
        if water < 0 or capacity < 0:
            raise InvalidConfigurationError("Truck water must be non-negative")
        water = min(water, capacity)

        truck = self.trucks.get(truck_id)
        if truck is None:
            truck = FireTruck(id=truck_id, x=x, y=y, water=water, max_water=capacity)
            self.trucks[truck_id] = truck
            return truck

        truck.x = x
        truck.y = y
        truck.water = water
        truck.max_water = capacity
        return truck

    def set_hose_nozzle(
        self, truck_id: str, nozzle_x: float, nozzle_y: float, is_open: bool
    ) -> None:
        truck = self.get_truck(truck_id)
        self.require_in_bounds(nozzle_x, nozzle_y)
        truck.nozzle_x = nozzle_x
        truck.nozzle_y = nozzle_y
        truck.hose_open = is_open

    def clear_hose_nozzle(self, truck_id: str) -> None:
        truck = self.get_truck(truck_id)
        truck.nozzle_x = None
        truck.nozzle_y = None
        truck.hose_open = False

    def set_hydrant_connected(self, truck_id: str, connected: bool) -> None:
        self.get_truck(truck_id).hydrant_connected = connected

    # ── Tick ─────────────────────────────────────────────────────────────────

    def update(self) -> bool:
        self.ticks += 1
        if self.ticks % self.speed_n != 0:
            return False

        self._refill_from_hydrants()
        self._apply_suppression()
        self._diffuse()
        self._drop_extinguished_sources()
        return True

    @property
    def is_extinguished(self) -> bool:
        if self.sources:
            return False
        return all(value <= 0 for row in self.grid for value in row)

    def _refill_from_hydrants(self) -> None:
        for truck in self.trucks.values():
            truck.refill_from_hydrant()

    def _apply_suppression(self) -> None:
        self.active_water.clear()
        for truck in self.trucks.values():
            if not truck.hose_open:
                continue
            if truck.water <= 0:
                truck.hose_open = False
                logger.debug("Truck %s ran dry, hose closed", truck.id)
                continue
            apply_water_jet(
                truck,
                self.grid,
                self.sources,
                self.active_water,
                spread_deg=self.spread_deg,
            )

    def _diffuse(self) -> None:
        current = self.grid
        next_grid = self._next_grid

        for y in range(self.height):
            row = current[y]
            next_row = next_grid[y]
            for x in range(self.width):
                value = row[x]
                intensity = self.sources.get((x, y))
                if intensity is not None:
                    if intensity > 0:
                        intensity += PhysicsCfg.SOURCE_GROWTH_PER_TICK
                        self.sources[(x, y)] = intensity
                        next_row[x] = intensity
                    else:
                        next_row[x] = value
                elif value < 0:
                    next_row[x] = self._eroded_wall(current, x, y, value)
                else:
                    next_row[x] = self._heated_cell(current, x, y, value)

        self.grid, self._next_grid = next_grid, current

    def _eroded_wall(self, current: Grid, x: int, y: int, value: float) -> float:
        for dx, dy in PhysicsCfg.MOORE_OFFSETS:
            nx, ny = x + dx, y + dy
            if 0 <= nx < self.width and 0 <= ny < self.height and current[ny][nx] > 0:
                # Clamped so a worn-out wall turns into an empty cell, never a burning one.
                return min(0.0, value + PhysicsCfg.WALL_EROSION_PER_TICK)
        return value

    def _heated_cell(self, current: Grid, x: int, y: int, value: float) -> float:
        heat_sum = 0.0
        for dx, dy in PhysicsCfg.MOORE_OFFSETS:
            nx, ny = x + dx, y + dy
            if not (0 <= nx < self.width and 0 <= ny < self.height):
                continue
            if (nx, ny) in self.active_water:
                continue
            neighbour = current[ny][nx]
            if neighbour <= 0:
                continue
            if dx != 0 and dy != 0 and (current[y][nx] < 0 or current[ny][x] < 0):
                continue
            heat_sum += neighbour

        mean = round_cell_value(heat_sum / PhysicsCfg.DIFFUSION_DIVISOR)
        heated = max(value, mean)
        if heated > 0:
            heated += PhysicsCfg.SELF_HEATING_PER_TICK
        return round_cell_value(heated)

    def _drop_extinguished_sources(self) -> None:
        for cell, intensity in list(self.sources.items()):
            if intensity <= 0:
                del self.sources[cell]
                logger.debug("Source at %s extinguished on tick %d", cell, self.ticks)

    # ── Snapshot ─────────────────────────────────────────────────────────────

    def to_snapshot(self) -> FireSimSnapshot:
        return FireSimSnapshot(
            ticks=self.ticks,
            width=self.width,
            height=self.height,
            grid=tuple(tuple(row) for row in self.grid),
            sources=tuple(
                SourceState(x=x, y=y, intensity=intensity)
                for (x, y), intensity in self.sources.items()
            ),
            active_water=tuple(
                ActiveWaterCell(x=x, y=y)
                for x, y in sorted(self.active_water, key=lambda cell: (cell[1], cell[0]))
            ),
            trucks=tuple(truck.to_state() for truck in self.trucks.values()),
        )
