from __future__ import annotations

import pytest
from fastapi import HTTPException

from firesim.engine import FireSimulationEngine
from firesim.enums import SimulationCommand
from firesim.errors import OutOfBoundsError, UnknownTruckError
from firesim.ws import (
    CommandIdempotencyStore,
    build_engine_mutation,
    command_cache_key,
    error_message,
    parse_command_name,
    parse_map_id,
    state_update_message,
)


@pytest.mark.asyncio
async def test_command_idempotency_store_put_get_roundtrip() -> None:
    store = CommandIdempotencyStore(ttl_seconds=60, max_entries=100)
    key = "conn:map-1:command-1"
    payload = {"type": "ack", "status": "applied"}

    assert await store.get(key) is None

    await store.put(key, payload)
    read_payload = await store.get(key)

    assert read_payload == payload
    assert read_payload is not payload


@pytest.mark.asyncio
async def test_command_idempotency_store_trims_oldest_entries() -> None:
    store = CommandIdempotencyStore(ttl_seconds=60, max_entries=2)

    for index in range(3):
        await store.put(f"key-{index}", {"index": index})

    assert await store.get("key-0") is None
    assert await store.get("key-2") == {"index": 2}


def test_command_cache_key_is_stable() -> None:
    assert command_cache_key("conn-1", "map-1", "cmd-123") == "conn-1:map-1:cmd-123"


@pytest.mark.parametrize("value", [None, "", "   ", 42, "m" * 129])
def test_parse_map_id_rejects_bad_values(value) -> None:
    with pytest.raises(HTTPException) as exc_info:
        parse_map_id(value)
    assert exc_info.value.status_code == 422


def test_parse_map_id_strips_whitespace() -> None:
    assert parse_map_id("  map-1 ") == "map-1"


def test_parse_command_name() -> None:
    assert parse_command_name("hose_update") == SimulationCommand.HOSE_UPDATE

    with pytest.raises(HTTPException) as exc_info:
        parse_command_name("open_all_valves")
    assert exc_info.value.status_code == 400
    assert "hose_update" in str(exc_info.value.detail)


def test_error_message_carries_command_id_only_when_known() -> None:
    assert error_message("nope", "UNKNOWN_TRUCK", 404) == {
        "type": "error",
        "detail": "nope",
        "code": "UNKNOWN_TRUCK",
        "status": 404,
    }
    assert error_message("nope", "HTTP_ERROR", 422, "cmd-1")["commandId"] == "cmd-1"


def test_state_update_message_wraps_snapshot() -> None:
    engine = FireSimulationEngine(2, 2)
    engine.set_source(1, 1, 50)

    message = state_update_message("map-1", engine.to_snapshot())

    assert message["type"] == "state_update"
    assert message["map_id"] == "map-1"
    assert message["state"]["grid"] == [[0.0, 0.0], [0.0, 50.0]]


def test_build_engine_mutation_applies_each_command() -> None:
    engine = FireSimulationEngine(10, 10)
    engine.set_source(8, 8, 400)

    build_engine_mutation(
        SimulationCommand.PLACE_TRUCK, {"id": "ac-1", "x": 1, "y": 1, "water": 900}
    )(engine)
    build_engine_mutation(
        SimulationCommand.HOSE_UPDATE,
        {"truck_id": "ac-1", "nozzle_x": 6, "nozzle_y": 6, "is_open": True},
    )(engine)
    build_engine_mutation(
        SimulationCommand.HYDRANT_UPDATE, {"truck_id": "ac-1", "connected": True}
    )(engine)
    build_engine_mutation(
        SimulationCommand.SET_SOURCE, {"x": 2, "y": 3, "intensity": 250}
    )(engine)
    build_engine_mutation(SimulationCommand.REMOVE_SOURCE, {"x": 8, "y": 8})(engine)

    truck = engine.trucks["ac-1"]
    assert truck.water == 900
    assert (truck.nozzle_x, truck.nozzle_y, truck.hose_open) == (6, 6, True)
    assert truck.hydrant_connected is True
    assert engine.sources == {(2, 3): 250}

    build_engine_mutation(SimulationCommand.CLEAR_HOSE, {"truck_id": "ac-1"})(engine)
    assert truck.has_nozzle is False
    assert truck.hose_open is False


def test_build_engine_mutation_validates_payload_first() -> None:
    with pytest.raises(HTTPException) as exc_info:
        build_engine_mutation(
            SimulationCommand.HOSE_UPDATE, {"truck_id": "ac-1", "nozzle_x": 1}
        )
    assert exc_info.value.status_code == 422
    assert str(exc_info.value.detail).startswith("payload.")

    with pytest.raises(HTTPException):
        build_engine_mutation(SimulationCommand.SET_SOURCE, ["not", "an", "object"])


def test_built_mutation_surfaces_engine_errors() -> None:
    engine = FireSimulationEngine(5, 5)

    with pytest.raises(UnknownTruckError):
        build_engine_mutation(
            SimulationCommand.HYDRANT_UPDATE, {"truck_id": "ghost", "connected": True}
        )(engine)
    with pytest.raises(OutOfBoundsError):
        build_engine_mutation(SimulationCommand.SET_SOURCE, {"x": 5, "y": 0})(engine)
