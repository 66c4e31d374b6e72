"""Radio adapter implementation on top of bleak.

All bleak work runs as tasks on the asyncio loop that was running when
`start()` was called, so every event reaches the sink on that one loop,
one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from blexplorer.adapters.base import AdapterEvents, GattService, Peripheral
from blexplorer.core.config import Settings
from blexplorer.core.errors import AdapterError
from blexplorer.core.model import AdapterState

LOGGER = logging.getLogger(__name__)

_UNAUTHORIZED_HINTS = ("not authorized", "unauthorized", "permission", "denied")
_UNSUPPORTED_HINTS = ("no bluetooth adapters", "not supported", "unsupported")


def adapter_state_for_error(exc: BaseException) -> AdapterState:
    """Best-effort mapping of a bleak failure to a radio power state."""
    message = str(exc).lower()
    if any(hint in message for hint in _UNAUTHORIZED_HINTS):
        return AdapterState.UNAUTHORIZED
    if any(hint in message for hint in _UNSUPPORTED_HINTS):
        return AdapterState.UNSUPPORTED
    return AdapterState.POWERED_OFF


class BleakRadioAdapter:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self._events: AdapterEvents | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._failure: asyncio.Future[None] | None = None
        self._scan_lock = asyncio.Lock()
        self._scanner: BleakScanner | None = None
        self._scan_requested = False
        self._power_state: AdapterState | None = None
        self._clients: dict[str, BleakClient] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closing = False

    def start(self, events: AdapterEvents) -> None:
        if self._events is not None:
            raise AdapterError("Radio adapter has already been started")
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise AdapterError("Radio adapter must be started from a running asyncio loop") from exc
        self._events = events
        self._failure = self._loop.create_future()
        self._spawn(self._monitor_power())

    def start_scan(self, service_uuids: Sequence[str] | None = None) -> None:
        self._scan_requested = True
        self._spawn(self._start_scan(service_uuids))

    def stop_scan(self) -> None:
        self._scan_requested = False
        self._spawn(self._stop_scan())

    def connect(self, peripheral: Peripheral) -> None:
        self._spawn(self._connect(peripheral))

    def discover_services(self, peripheral: Peripheral) -> None:
        self._spawn(self._discover_services(peripheral))

    async def wait(self) -> None:
        """Block until a background task fails, re-raising its error."""
        if self._failure is None:
            raise AdapterError("Radio adapter has not been started")
        await self._failure

    async def close(self) -> None:
        self._closing = True
        self._scan_requested = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._stop_scan()
        for identifier, client in list(self._clients.items()):
            try:
                await client.disconnect()
            except BleakError as exc:
                LOGGER.debug("Disconnect of %s failed: %s", identifier, exc)
        self._clients.clear()

    @property
    def _sink(self) -> AdapterEvents:
        if self._events is None:
            raise AdapterError("Radio adapter has not been started")
        return self._events

    def _backend_kwargs(self) -> dict[str, Any]:
        if self._settings.adapter:
            return {"bluez": {"adapter": self._settings.adapter}}
        return {}

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._loop is None:
            coro.close()
            raise AdapterError("Radio adapter has not been started")
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._fail(exc)

    def _fail(self, exc: BaseException) -> None:
        LOGGER.error("Radio adapter callback failed: %s", exc)
        if self._failure is not None and not self._failure.done():
            self._failure.set_exception(exc)

    def _report_power(self, state: AdapterState) -> None:
        if state is self._power_state:
            return
        self._power_state = state
        self._sink.on_adapter_state_changed(state)

    async def _monitor_power(self) -> None:
        while True:
            state: AdapterState | None = None
            async with self._scan_lock:
                if self._scanner is None:
                    state = await self._probe()
            if state is not None:
                self._report_power(state)
            await asyncio.sleep(self._settings.power_poll_interval_s)

    async def _probe(self) -> AdapterState:
        scanner = BleakScanner(**self._backend_kwargs())
        try:
            await scanner.start()
            await scanner.stop()
        except (BleakError, OSError) as exc:
            LOGGER.debug("Radio probe failed: %s", exc)
            return adapter_state_for_error(exc)
        return AdapterState.POWERED_ON

    async def _start_scan(self, service_uuids: Sequence[str] | None) -> None:
        async with self._scan_lock:
            if self._scanner is not None or not self._scan_requested:
                return
            scanner = BleakScanner(
                detection_callback=self._on_detection,
                service_uuids=list(service_uuids) if service_uuids else None,
                scanning_mode=self._settings.scanning_mode,
                **self._backend_kwargs(),
            )
            try:
                await scanner.start()
            except (BleakError, OSError) as exc:
                LOGGER.warning("Could not start scanning: %s", exc)
                failed_state = adapter_state_for_error(exc)
            else:
                self._scanner = scanner
                return
        self._report_power(failed_state)

    async def _stop_scan(self) -> None:
        async with self._scan_lock:
            scanner, self._scanner = self._scanner, None
            if scanner is None:
                return
            try:
                await scanner.stop()
            except (BleakError, OSError) as exc:
                LOGGER.warning("Could not stop scanning: %s", exc)

    def _on_detection(self, device: Any, advertisement_data: Any) -> None:
        if not self._scan_requested:
            return
        name = device.name or getattr(advertisement_data, "local_name", None)
        # Called by bleak outside our tasks; failures surface through wait().
        try:
            self._sink.on_peripheral_discovered(
                Peripheral(identifier=device.address, name=name, handle=device)
            )
        except Exception as exc:
            self._fail(exc)

    async def _connect(self, peripheral: Peripheral) -> None:
        client = BleakClient(
            peripheral.handle if peripheral.handle is not None else peripheral.identifier,
            disconnected_callback=lambda _client: self._on_disconnected(peripheral),
            timeout=self._settings.connect_timeout_s,
            **self._backend_kwargs(),
        )
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            self._sink.on_peripheral_connect_failed(peripheral, exc)
            return
        self._clients[peripheral.identifier] = client
        self._sink.on_peripheral_connected(peripheral)

    def _on_disconnected(self, peripheral: Peripheral) -> None:
        self._clients.pop(peripheral.identifier, None)
        if self._closing:
            return
        try:
            self._sink.on_peripheral_disconnected(peripheral)
        except Exception as exc:
            self._fail(exc)

    async def _discover_services(self, peripheral: Peripheral) -> None:
        client = self._clients.get(peripheral.identifier)
        if client is None:
            LOGGER.warning("No connected client for %s, skipping discovery", peripheral.identifier)
            return

        # bleak resolves the GATT table during connect.
        services = [
            GattService(
                uuid=service.uuid,
                characteristics=tuple(char.uuid for char in service.characteristics),
                handle=service,
            )
            for service in client.services
        ]
        self._sink.on_services_discovered(peripheral, services)
        for service in services:
            self._sink.on_characteristics_discovered(peripheral, service)
