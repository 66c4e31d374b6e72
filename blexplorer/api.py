"""Stable public API for building tooling on top of blexplorer.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from blexplorer.adapters.base import AdapterEvents, GattService, Peripheral, RadioAdapter
from blexplorer.adapters.bleak_adapter import BleakRadioAdapter
from blexplorer.core.config import Settings, load_settings
from blexplorer.core.errors import (
    AdapterError,
    AlreadyStartedError,
    BlexplorerError,
    ConfigLoadError,
    ConfigValidationError,
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
from blexplorer.core.registry import DeviceRegistry

__all__ = [
    "BlexplorerError",
    "AdapterError",
    "AlreadyStartedError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ReentrantMutationError",
    "UnknownPeripheralError",
    "UnknownServiceError",
    "UnrecognizedAdapterStateError",
    "AdapterState",
    "Characteristic",
    "ConnectionState",
    "Device",
    "RadioPhase",
    "Service",
    "AdapterEvents",
    "GattService",
    "Peripheral",
    "RadioAdapter",
    "BleakRadioAdapter",
    "DeviceRegistry",
    "Settings",
    "load_settings",
    "Explorer",
]


class Explorer:
    """Public entry point wiring a radio adapter to a device registry.

    Without an explicit adapter, a `BleakRadioAdapter` is built from
    `settings` (or the user's config file). Consumers read state through
    `radio_state()`/`devices()` and subscribe with `on_changed()`.
    """

    def __init__(
        self,
        *,
        adapter: RadioAdapter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self._adapter = adapter or BleakRadioAdapter(self.settings)
        self.registry = DeviceRegistry(self._adapter)

    def radio_state(self) -> str:
        return self.registry.radio_state()

    def devices(self) -> tuple[Device, ...]:
        return self.registry.devices()

    def on_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self.registry.on_changed(callback)

    async def run(self, duration_s: float | None = None) -> None:
        """Start the registry and keep the loop alive for `duration_s` (or forever)."""
        self.registry.start()
        wait = getattr(self._adapter, "wait", None)
        try:
            waiter = wait() if wait is not None else asyncio.Event().wait()
            if duration_s is None:
                await waiter
            else:
                try:
                    await asyncio.wait_for(waiter, duration_s)
                except asyncio.TimeoutError:
                    pass
        finally:
            close = getattr(self._adapter, "close", None)
            if close is not None:
                await close()
