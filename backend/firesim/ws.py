from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar
from uuid import uuid4

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from .engine import FireSimulationEngine
from .enums import AckStatus, ClientMessageType, ServerMessageType, SimulationCommand
from .errors import FireSimError
from .schemas import (
    FireSimSnapshot,
    HoseUpdatePayload,
    HydrantUpdatePayload,
    SourcePayload,
    TruckCommandPayload,
    TruckPlacement,
)
from .security.rate_limit import SlidingWindowRateLimiter
from .sessions import SimulationSessionManager

logger = logging.getLogger(__name__)

ws_router = APIRouter()

WS_MAX_COMMANDS_PER_WINDOW = 30
WS_RATE_LIMIT_WINDOW_SECONDS = 1
WS_MAX_COMMAND_ID_LENGTH = 128
WS_MAX_MAP_ID_LENGTH = 128

ModelT = TypeVar("ModelT", bound=BaseModel)
EngineMutation = Callable[[FireSimulationEngine], object]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketConnectionManager:
    def __init__(self) -> None:
        self._connections_by_map: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    def _discard_locked(self, websocket: WebSocket) -> None:
        for map_id in list(self._connections_by_map):
            sockets = self._connections_by_map[map_id]
            sockets.discard(websocket)
            if not sockets:
                del self._connections_by_map[map_id]

    async def subscribe(self, map_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard_locked(websocket)
            self._connections_by_map.setdefault(map_id, set()).add(websocket)

    async def unsubscribe(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard_locked(websocket)

    async def broadcast(self, map_id: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            recipients = list(self._connections_by_map.get(map_id, set()))

        stale_sockets: list[WebSocket] = []
        for websocket in recipients:
            try:
                await websocket.send_json(payload)
            except Exception:
                stale_sockets.append(websocket)

        for stale_websocket in stale_sockets:
            logger.debug("Dropping stale subscriber of map %s", map_id)
            await self.unsubscribe(stale_websocket)


class CommandIdempotencyStore:
    def __init__(self, ttl_seconds: int = 900, max_entries: int = 20_000) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._entries: dict[str, tuple[datetime, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _cleanup_locked(self) -> None:
        expiration_border = utcnow() - timedelta(seconds=self._ttl_seconds)
        for key, (created_at, _) in list(self._entries.items()):
            if created_at < expiration_border:
                del self._entries[key]

    def _trim_locked(self) -> None:
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        oldest_keys = sorted(self._entries, key=lambda key: self._entries[key][0])
        for key in oldest_keys[:overflow]:
            del self._entries[key]

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            self._cleanup_locked()
            entry = self._entries.get(key)
            if entry is None:
                return None
            return entry[1].copy()

    async def put(self, key: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            self._cleanup_locked()
            self._entries[key] = (utcnow(), payload.copy())
            self._trim_locked()


def state_update_message(map_id: str, snapshot: FireSimSnapshot) -> dict[str, Any]:
    return {
        "type": ServerMessageType.STATE_UPDATE.value,
        "map_id": map_id,
        "state": snapshot.to_message(),
    }


ws_connections = WebSocketConnectionManager()
ws_idempotency = CommandIdempotencyStore()


async def broadcast_state_update(map_id: str, snapshot: FireSimSnapshot) -> None:
    await ws_connections.broadcast(map_id, state_update_message(map_id, snapshot))


simulation_sessions = SimulationSessionManager(listener=broadcast_state_update)


def parse_map_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=422, detail="map_id is required")
    map_id = value.strip()
    if len(map_id) > WS_MAX_MAP_ID_LENGTH:
        raise HTTPException(status_code=422, detail="map_id is too long")
    return map_id


def parse_command_name(value: Any) -> SimulationCommand:
    try:
        return SimulationCommand(str(value))
    except ValueError as exc:
        allowed_values = ", ".join(entry.value for entry in SimulationCommand)
        raise HTTPException(
            status_code=400, detail=f"command must be one of: {allowed_values}"
        ) from exc


def parse_payload(model: type[ModelT], payload: Any) -> ModelT:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="payload must be object")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first_error = exc.errors()[0]
        location = ".".join(str(part) for part in first_error.get("loc", ()))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"payload.{location}: {first_error.get('msg')}",
        ) from exc


def build_engine_mutation(
    command: SimulationCommand, payload: dict[str, Any]
) -> EngineMutation:
    if command == SimulationCommand.HOSE_UPDATE:
        hose = parse_payload(HoseUpdatePayload, payload)
        return lambda engine: engine.set_hose_nozzle(
            hose.truck_id, hose.nozzle_x, hose.nozzle_y, hose.is_open
        )
    if command == SimulationCommand.CLEAR_HOSE:
        target = parse_payload(TruckCommandPayload, payload)
        return lambda engine: engine.clear_hose_nozzle(target.truck_id)
    if command == SimulationCommand.HYDRANT_UPDATE:
        hydrant = parse_payload(HydrantUpdatePayload, payload)
        return lambda engine: engine.set_hydrant_connected(
            hydrant.truck_id, hydrant.connected
        )
    if command == SimulationCommand.SET_SOURCE:
        source = parse_payload(SourcePayload, payload)
        return lambda engine: engine.set_source(source.x, source.y, source.intensity)
    if command == SimulationCommand.REMOVE_SOURCE:
        cell = parse_payload(SourcePayload, payload)
        return lambda engine: engine.remove_source(cell.x, cell.y)
    if command == SimulationCommand.PLACE_TRUCK:
        truck = parse_payload(TruckPlacement, payload)
        return lambda engine: engine.place_truck(
            truck.id, truck.x, truck.y, truck.water, truck.max_water
        )
    raise HTTPException(status_code=400, detail="Unknown command")


async def apply_realtime_command(
    map_id: str, command: SimulationCommand, payload: dict[str, Any]
) -> None:
    session = simulation_sessions.get(map_id)
    mutation = build_engine_mutation(command, payload)
    await session.apply(mutation)


def command_cache_key(connection_id: str, map_id: str, command_id: str) -> str:
    return f"{connection_id}:{map_id}:{command_id}"


def error_message(
    detail: str, code: str, status_code: int, command_id: str | None = None
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "type": ServerMessageType.ERROR.value,
        "detail": detail,
        "code": code,
        "status": status_code,
    }
    if command_id:
        message["commandId"] = command_id
    return message


async def safe_send_json(websocket: WebSocket, payload: dict[str, Any]) -> None:
    try:
        await websocket.send_json(payload)
    except Exception:
        return


@ws_router.websocket("/firesim/ws")
async def firesim_ws_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid4())
    current_map_id: str | None = None
    command_limiter = SlidingWindowRateLimiter(
        WS_MAX_COMMANDS_PER_WINDOW, WS_RATE_LIMIT_WINDOW_SECONDS
    )
    logger.debug("Realtime connection %s opened", connection_id)

    try:
        while True:
            command_id_for_error: str | None = None
            try:
                raw_message = await websocket.receive_text()
                try:
                    message = json.loads(raw_message)
                except json.JSONDecodeError as exc:
                    raise HTTPException(
                        status_code=422, detail="Message must be JSON"
                    ) from exc
                if not isinstance(message, dict):
                    raise HTTPException(status_code=422, detail="Message must be object")

                message_type = message.get("type")
                if message_type == ClientMessageType.PING.value:
                    await websocket.send_json(
                        {
                            "type": ServerMessageType.PONG.value,
                            "serverTime": utcnow().isoformat(),
                        }
                    )
                    continue

                if message_type == ClientMessageType.JOIN_SIM.value:
                    current_map_id = parse_map_id(message.get("map_id"))
                    await ws_connections.subscribe(current_map_id, websocket)
                    await websocket.send_json(
                        {
                            "type": ServerMessageType.JOINED.value,
                            "map_id": current_map_id,
                            "running": current_map_id in simulation_sessions,
                        }
                    )
                    continue

                if message_type != ClientMessageType.COMMAND.value:
                    raise HTTPException(status_code=400, detail="Unknown message type")

                command_id = message.get("commandId")
                if not isinstance(command_id, str) or not command_id.strip():
                    raise HTTPException(status_code=422, detail="commandId is required")
                if len(command_id) > WS_MAX_COMMAND_ID_LENGTH:
                    raise HTTPException(status_code=422, detail="commandId is too long")
                command_id_for_error = command_id

                command = parse_command_name(message.get("command"))
                target_map_id = current_map_id
                if message.get("map_id") is not None:
                    target_map_id = parse_map_id(message.get("map_id"))
                if target_map_id is None:
                    raise HTTPException(status_code=422, detail="No simulation joined")

                command_limiter.enforce(connection_id, "Too many realtime commands")
                cache_key = command_cache_key(connection_id, target_map_id, command_id)
                cached_ack = await ws_idempotency.get(cache_key)
                if cached_ack is not None:
                    await websocket.send_json(
                        {**cached_ack, "status": AckStatus.DUPLICATE.value}
                    )
                    continue

                await apply_realtime_command(
                    target_map_id, command, message.get("payload", {})
                )

                ack_message = {
                    "type": ServerMessageType.ACK.value,
                    "commandId": command_id,
                    "status": AckStatus.APPLIED.value,
                    "command": command.value,
                    "map_id": target_map_id,
                    "serverTime": utcnow().isoformat(),
                }
                await ws_idempotency.put(cache_key, ack_message)
                await websocket.send_json(ack_message)
            except FireSimError as exc:
                logger.warning(
                    "Realtime command rejected on connection %s: %s",
                    connection_id,
                    exc.detail,
                )
                await safe_send_json(
                    websocket,
                    error_message(
                        exc.detail, exc.code, exc.status_code, command_id_for_error
                    ),
                )
            except HTTPException as exc:
                await safe_send_json(
                    websocket,
                    error_message(
                        str(exc.detail),
                        "HTTP_ERROR",
                        exc.status_code,
                        command_id_for_error,
                    ),
                )
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Realtime connection %s failed a message", connection_id)
                await safe_send_json(
                    websocket,
                    error_message(
                        "Internal realtime server error",
                        "INTERNAL_ERROR",
                        status.HTTP_500_INTERNAL_SERVER_ERROR,
                        command_id_for_error,
                    ),
                )
    except WebSocketDisconnect:
        return
    finally:
        await ws_connections.unsubscribe(websocket)
        logger.debug("Realtime connection %s closed", connection_id)
