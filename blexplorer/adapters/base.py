"""Radio adapter interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from blexplorer.core.model import AdapterState


@dataclass(frozen=True)
class Peripheral:
    """Reference to a remote peripheral as reported by the adapter."""

    identifier: str
    name: str | None = None
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattService:
    """Reference to a service discovered on a connected peripheral."""

    uuid: str
    characteristics: tuple[str, ...] = ()
    handle: Any = field(default=None, compare=False, repr=False)


class AdapterEvents(Protocol):
    def on_adapter_state_changed(self, state: AdapterState | str) -> None:
        """Radio power state changed."""

    def on_peripheral_discovered(self, peripheral: Peripheral) -> None:
        """A peripheral was seen while scanning."""

    def on_peripheral_connected(self, peripheral: Peripheral) -> None:
        """A connection attempt succeeded."""

    def on_peripheral_connect_failed(
        self,
        peripheral: Peripheral,
        error: BaseException | None = None,
    ) -> None:
        """A connection attempt failed."""

    def on_peripheral_disconnected(self, peripheral: Peripheral) -> None:
        """A connected peripheral went away."""

    def on_services_discovered(
        self,
        peripheral: Peripheral,
        services: Sequence[GattService],
    ) -> None:
        """Services were discovered on a connected peripheral."""

    def on_characteristics_discovered(self, peripheral: Peripheral, service: GattService) -> None:
        """Characteristics were discovered on one service."""


class RadioAdapter(Protocol):
    def start(self, events: AdapterEvents) -> None:
        """Begin delivering events to `events`."""

    def start_scan(self, service_uuids: Sequence[str] | None = None) -> None:
        """Scan for peripherals; `None` means no service filter."""

    def stop_scan(self) -> None:
        """Stop an active scan."""

    def connect(self, peripheral: Peripheral) -> None:
        """Start connecting to a peripheral."""

    def discover_services(self, peripheral: Peripheral) -> None:
        """Start service and characteristic discovery on a connected peripheral."""
