from enum import Enum


class ScenarioStatus(str, Enum):
    RUNNING = "RUNNING"
    HALTED = "HALTED"


class ClientMessageType(str, Enum):
    JOIN_SIM = "join_sim"
    COMMAND = "command"
    PING = "ping"


class ServerMessageType(str, Enum):
    JOINED = "joined"
    STATE_UPDATE = "state_update"
    ACK = "ack"
    ERROR = "error"
    PONG = "pong"


class SimulationCommand(str, Enum):
    HOSE_UPDATE = "hose_update"
    HYDRANT_UPDATE = "hydrant_update"
    CLEAR_HOSE = "clear_hose"
    SET_SOURCE = "set_source"
    REMOVE_SOURCE = "remove_source"
    PLACE_TRUCK = "place_truck"


class AckStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
