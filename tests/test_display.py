from __future__ import annotations

from blexplorer.adapters.base import GattService, Peripheral
from blexplorer.core.model import AdapterState, Characteristic, ConnectionState, Device, Service
from blexplorer.core.registry import DeviceRegistry
from blexplorer.display import TreeDisplay, render_tree


class NullAdapter:
    def start(self, events) -> None:
        pass

    def start_scan(self, service_uuids=None) -> None:
        pass

    def stop_scan(self) -> None:
        pass

    def connect(self, peripheral) -> None:
        pass

    def discover_services(self, peripheral) -> None:
        pass


def test_render_tree_lists_devices_services_and_characteristics() -> None:
    devices = (
        Device(
            id="abc",
            name="Widget",
            connection_state=ConnectionState.CONNECTED,
            services=(Service(name="180f", characteristics=(Characteristic(name="2a19"),)),),
        ),
        Device(id="def", name=None, connection_state=ConnectionState.FAILED_TO_CONNECT),
    )

    assert render_tree("Scanning...", devices) == [
        "Scanning...",
        "Widget (abc)",
        "  Connected",
        "  Service: 180f",
        "    Characteristic: 2a19",
        "<unnamed> (def)",
        "  Failed to connect",
    ]


def test_tree_display_redraws_on_every_change() -> None:
    registry = DeviceRegistry(NullAdapter())
    frames: list[str] = []
    display = TreeDisplay(registry, echo=frames.append, clear=False)
    display.attach()

    widget = Peripheral(identifier="abc", name="Widget")
    registry.on_adapter_state_changed(AdapterState.POWERED_ON)
    registry.on_peripheral_discovered(widget)
    registry.on_peripheral_connected(widget)
    registry.on_services_discovered(widget, [GattService(uuid="180f")])

    assert len(frames) == 4
    assert frames[0] == "Scanning..."
    assert frames[-1].splitlines() == ["Scanning...", "Widget (abc)", "  Connected", "  Service: 180f"]


def test_tree_display_detach_stops_redraws() -> None:
    registry = DeviceRegistry(NullAdapter())
    frames: list[str] = []
    display = TreeDisplay(registry, echo=frames.append, clear=False)
    display.attach()
    display.detach()

    registry.on_adapter_state_changed(AdapterState.POWERED_OFF)

    assert frames == []
