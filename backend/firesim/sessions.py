from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from . import settings
from .engine import FireSimulationEngine
from .enums import ScenarioStatus
from .errors import ScenarioHaltedError, UnknownScenarioError
from .schemas import FireSimSnapshot, StartSimulationRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")
SnapshotListener = Callable[[str, FireSimSnapshot], Awaitable[None]]
Mutation = Callable[[FireSimulationEngine], T]


class SimulationSession:
    def __init__(
        self,
        map_id: str,
        engine: FireSimulationEngine,
        tick_interval_sec: float = settings.TICK_INTERVAL_SEC,
    ) -> None:
        self.map_id = map_id
        self.engine = engine
        self.tick_interval_sec = tick_interval_sec
        self.status = ScenarioStatus.RUNNING
        self.lock = asyncio.Lock()
        self.latest_snapshot = engine.to_snapshot()
        self._task: asyncio.Task[None] | None = None
        self._extinguished_reported = False

    @property
    def is_halted(self) -> bool:
        return self.status == ScenarioStatus.HALTED

    @property
    def is_ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> FireSimSnapshot | None:
        """Advance the engine once. Caller must hold ``lock``.

        Returns the new snapshot, or None when the tick was a no-op or the
        session is halted. An exception from the engine halts the session.
        """
        if self.is_halted:
            return None
        try:
            changed = self.engine.update()
            if not changed:
                return None
            snapshot = self.engine.to_snapshot()
        except Exception:
            self.status = ScenarioStatus.HALTED
            logger.exception(
                "Simulation %s halted: tick %d failed", self.map_id, self.engine.ticks
            )
            return None

        self.latest_snapshot = snapshot
        if not self._extinguished_reported and self.engine.is_extinguished:
            self._extinguished_reported = True
            logger.info(
                "Fire on map %s extinguished at tick %d", self.map_id, snapshot.ticks
            )
        return snapshot

    async def apply(self, mutation: Mutation[T]) -> T:
        async with self.lock:
            if self.is_halted:
                raise ScenarioHaltedError(self.map_id)
            return mutation(self.engine)

    async def advance(self) -> FireSimSnapshot | None:
        async with self.lock:
            return self.tick()

    async def run_tick_loop(self, listener: SnapshotListener) -> None:
        while not self.is_halted:
            await asyncio.sleep(self.tick_interval_sec)
            snapshot = await self.advance()
            if snapshot is None:
                continue
            try:
                await listener(self.map_id, snapshot)
            except Exception:
                logger.exception(
                    "Snapshot delivery for map %s failed at tick %d",
                    self.map_id,
                    snapshot.ticks,
                )

    def start_ticking(self, listener: SnapshotListener) -> None:
        if self.is_ticking:
            return
        self._task = asyncio.create_task(
            self.run_tick_loop(listener), name=f"firesim-tick-{self.map_id}"
        )

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class SimulationSessionManager:
    def __init__(
        self,
        listener: SnapshotListener | None = None,
        tick_interval_sec: float = settings.TICK_INTERVAL_SEC,
        max_grid_cells: int = settings.MAX_GRID_CELLS,
        default_speed_n: int = settings.DEFAULT_SPEED_N,
    ) -> None:
        self.listener = listener
        self.tick_interval_sec = tick_interval_sec
        self.max_grid_cells = max_grid_cells
        self.default_speed_n = default_speed_n
        self._sessions: dict[str, SimulationSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, map_id: object) -> bool:
        return map_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, map_id: str) -> SimulationSession:
        session = self._sessions.get(map_id)
        if session is None:
            raise UnknownScenarioError(map_id)
        return session

    def latest_snapshot(self, map_id: str) -> FireSimSnapshot:
        return self.get(map_id).latest_snapshot

    async def start(
        self, request: StartSimulationRequest, autostart: bool = True
    ) -> SimulationSession:
        engine = FireSimulationEngine.from_layout(
            request.width,
            request.height,
            walls=request.walls,
            sources=request.sources,
            trucks=request.trucks,
            speed_n=request.speed_n or self.default_speed_n,
            max_cells=self.max_grid_cells,
        )
        session = SimulationSession(request.map_id, engine, self.tick_interval_sec)

        async with self._lock:
            previous = self._sessions.get(request.map_id)
            self._sessions[request.map_id] = session
        if previous is not None:
            await previous.stop()

        if autostart and self.listener is not None:
            session.start_ticking(self.listener)
        logger.info(
            "Simulation %s started: %dx%d grid, %d walls, %d sources, %d trucks",
            request.map_id,
            request.width,
            request.height,
            len(request.walls),
            len(request.sources),
            len(request.trucks),
        )
        return session

    async def reset(self, map_id: str) -> bool:
        async with self._lock:
            session = self._sessions.pop(map_id, None)
        if session is None:
            return False
        await session.stop()
        logger.info("Simulation %s reset at tick %d", map_id, session.engine.ticks)
        return True

    async def shutdown(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.stop()
