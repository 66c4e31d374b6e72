"""Registry of discovered peripherals driven by radio adapter events.

The registry is the single owner of radio phase and per-device state. Every
adapter callback is applied as one mutation followed by exactly one change
notification; readers only ever receive frozen snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from blexplorer.adapters.base import GattService, Peripheral, RadioAdapter
from blexplorer.core.errors import (
    AlreadyStartedError,
    ReentrantMutationError,
    UnknownPeripheralError,
    UnknownServiceError,
    UnrecognizedAdapterStateError,
)
from blexplorer.core.model import (
    AdapterState,
    Characteristic,
    ConnectionState,
    Device,
    RadioPhase,
    Service,
)

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[], None]

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.FAILED_TO_CONNECT}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


@dataclass
class _ServiceRecord:
    name: str
    handle: Any = None
    characteristics: list[Characteristic] = field(default_factory=list)

    def matches(self, service: GattService) -> bool:
        if self.name != service.uuid:
            return False
        # Without a native handle, fall back to the UUID alone.
        return service.handle is None or self.handle == service.handle

    def snapshot(self) -> Service:
        return Service(name=self.name, characteristics=tuple(self.characteristics))


@dataclass
class _DeviceRecord:
    id: str
    name: str | None
    state: ConnectionState
    services: list[_ServiceRecord] = field(default_factory=list)

    def snapshot(self) -> Device:
        return Device(
            id=self.id,
            name=self.name,
            connection_state=self.state,
            services=tuple(service.snapshot() for service in self.services),
        )


class DeviceRegistry:
    """Process-lifetime table of BLE radio state and discovered peripherals.

    Implements the adapter event sink: pass an adapter in, call `start()`, and
    the adapter's callbacks drive every state change from then on.
    """

    def __init__(self, adapter: RadioAdapter) -> None:
        self._adapter = adapter
        self._started = False
        self._dispatching = False
        self._radio_state = RadioPhase.INITIALIZING
        self._devices: dict[str, _DeviceRecord] = {}
        self._listeners: list[ChangeListener] = []

    def start(self) -> None:
        self._guard()
        if self._started:
            raise AlreadyStartedError("Device registry has already been started")
        self._adapter.start(self)
        self._started = True

    def radio_state(self) -> str:
        return self._radio_state.value

    def devices(self) -> tuple[Device, ...]:
        return tuple(record.snapshot() for record in self._devices.values())

    def device(self, device_id: str) -> Device:
        return self._lookup(device_id).snapshot()

    def on_changed(self, callback: ChangeListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    # Adapter events

    def on_adapter_state_changed(self, state: AdapterState | str) -> None:
        self._guard()
        try:
            parsed = AdapterState.parse(state)
        except UnrecognizedAdapterStateError as exc:
            LOGGER.warning("%s; radio phase is now unknown", exc)
            self._radio_state = RadioPhase.UNKNOWN
        else:
            if parsed is AdapterState.POWERED_ON:
                self._radio_state = RadioPhase.SCANNING
                self._adapter.start_scan(None)
            else:
                self._radio_state = RadioPhase.WAITING_FOR_POWER
                self._adapter.stop_scan()
        self._notify()

    def on_peripheral_discovered(self, peripheral: Peripheral) -> None:
        self._guard()
        if peripheral.identifier in self._devices:
            LOGGER.debug("Ignoring rediscovery of %s", peripheral.identifier)
            return

        self._devices[peripheral.identifier] = _DeviceRecord(
            id=peripheral.identifier,
            name=peripheral.name,
            state=ConnectionState.CONNECTING,
        )
        self._adapter.connect(peripheral)
        self._notify()

    def on_peripheral_connected(self, peripheral: Peripheral) -> None:
        self._guard()
        if not self._transition(peripheral, ConnectionState.CONNECTED):
            return
        LOGGER.info("Connected peripheral %s (%s)", peripheral.name, peripheral.identifier)
        self._adapter.discover_services(peripheral)
        self._notify()

    def on_peripheral_connect_failed(
        self,
        peripheral: Peripheral,
        error: BaseException | None = None,
    ) -> None:
        self._guard()
        if not self._transition(peripheral, ConnectionState.FAILED_TO_CONNECT):
            return
        if error is not None:
            LOGGER.info("Failed to connect %s: %s", peripheral.identifier, error)
        self._notify()

    def on_peripheral_disconnected(self, peripheral: Peripheral) -> None:
        self._guard()
        if not self._transition(peripheral, ConnectionState.DISCONNECTED):
            return
        self._notify()

    def on_services_discovered(
        self,
        peripheral: Peripheral,
        services: Sequence[GattService],
    ) -> None:
        self._guard()
        record = self._lookup(peripheral.identifier)
        record.services.extend(
            _ServiceRecord(name=service.uuid, handle=service.handle) for service in services
        )
        self._notify()

    def on_characteristics_discovered(self, peripheral: Peripheral, service: GattService) -> None:
        self._guard()
        record = self._lookup(peripheral.identifier)
        # Rediscovery can repeat a service; the newest matching record wins.
        target = next((s for s in reversed(record.services) if s.matches(service)), None)
        if target is None:
            raise UnknownServiceError(
                f"Service {service.uuid} was never discovered on {peripheral.identifier}"
            )
        target.characteristics.extend(Characteristic(name=uuid) for uuid in service.characteristics)
        self._notify()

    # Internals

    def _lookup(self, device_id: str) -> _DeviceRecord:
        try:
            return self._devices[device_id]
        except KeyError:
            raise UnknownPeripheralError(f"Peripheral {device_id} was never discovered") from None

    def _transition(self, peripheral: Peripheral, new_state: ConnectionState) -> bool:
        record = self._lookup(peripheral.identifier)
        if new_state not in _TRANSITIONS.get(record.state, frozenset()):
            LOGGER.warning(
                "Ignoring %s -> %s for %s",
                record.state.value,
                new_state.value,
                peripheral.identifier,
            )
            return False
        record.state = new_state
        return True

    def _guard(self) -> None:
        if self._dispatching:
            raise ReentrantMutationError("Device registry cannot be changed from a change listener")

    def _notify(self) -> None:
        self._dispatching = True
        try:
            for listener in tuple(self._listeners):
                listener()
        finally:
            self._dispatching = False
