"""Core data models shared by the registry, display, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from blexplorer.core.errors import UnrecognizedAdapterStateError


class RadioPhase(str, Enum):
    INITIALIZING = "Initializing..."
    SCANNING = "Scanning..."
    WAITING_FOR_POWER = "Waiting for Bluetooth PowerOn..."
    UNKNOWN = "<unknown state>"


class ConnectionState(str, Enum):
    CONNECTING = "Connecting..."
    CONNECTED = "Connected"
    FAILED_TO_CONNECT = "Failed to connect"
    DISCONNECTED = "Disconnected"


class AdapterState(str, Enum):
    """Power states a radio adapter can report."""

    POWERED_ON = "powered_on"
    POWERED_OFF = "powered_off"
    RESETTING = "resetting"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, value: AdapterState | str) -> AdapterState:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for state in cls:
                if state.value == normalized:
                    return state
        raise UnrecognizedAdapterStateError(f"Unrecognized adapter state {value!r}")


@dataclass(frozen=True)
class Characteristic:
    name: str


@dataclass(frozen=True)
class Service:
    name: str
    characteristics: tuple[Characteristic, ...] = ()


@dataclass(frozen=True)
class Device:
    id: str
    name: str | None
    connection_state: ConnectionState
    services: tuple[Service, ...] = ()
