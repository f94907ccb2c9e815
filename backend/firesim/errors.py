from __future__ import annotations


class FireSimError(Exception):
    code = "FIRESIM_ERROR"
    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class OutOfBoundsError(FireSimError):
    code = "OUT_OF_BOUNDS"
    status_code = 422

    def __init__(self, x: float, y: float, width: int, height: int) -> None:
        super().__init__(
            f"Coordinate ({x}, {y}) is outside the {width}x{height} grid"
        )
        self.x = x
        self.y = y


class UnknownTruckError(FireSimError):
    code = "UNKNOWN_TRUCK"
    status_code = 404

    def __init__(self, truck_id: str) -> None:
        super().__init__(f"Truck {truck_id!r} is not placed")
        self.truck_id = truck_id


class InvalidConfigurationError(FireSimError):
    code = "INVALID_CONFIGURATION"
    status_code = 422


class UnknownScenarioError(FireSimError):
    code = "UNKNOWN_SCENARIO"
    status_code = 404

    def __init__(self, map_id: str) -> None:
        super().__init__(f"Simulation for map {map_id!r} is not running")
        self.map_id = map_id


class ScenarioHaltedError(FireSimError):
    code = "SCENARIO_HALTED"
    status_code = 409

    def __init__(self, map_id: str) -> None:
        super().__init__(f"Simulation for map {map_id!r} was halted after a failed tick")
        self.map_id = map_id
