from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest
from bleak.exc import BleakError

from blexplorer.adapters import bleak_adapter
from blexplorer.adapters.bleak_adapter import BleakRadioAdapter, adapter_state_for_error
from blexplorer.api import Explorer
from blexplorer.core.config import Settings
from blexplorer.core.errors import AdapterError
from blexplorer.core.model import AdapterState, ConnectionState
from blexplorer.core.registry import DeviceRegistry


class FakeRadio:
    def __init__(self) -> None:
        self.scanners: list[Any] = []
        self.clients: list[Any] = []
        self.scan_error: BaseException | None = None
        self.connect_error: BaseException | None = None
        self.services: list[Any] = []

    def scanning(self) -> Any:
        return next(s for s in reversed(self.scanners) if s.detection_callback is not None)


@pytest.fixture
def radio(monkeypatch: pytest.MonkeyPatch) -> FakeRadio:
    radio = FakeRadio()

    class FakeScanner:
        def __init__(self, detection_callback=None, service_uuids=None, scanning_mode="active", **kwargs) -> None:
            self.detection_callback = detection_callback
            self.service_uuids = service_uuids
            self.scanning_mode = scanning_mode
            self.kwargs = kwargs
            self.running = False
            radio.scanners.append(self)

        async def start(self) -> None:
            if radio.scan_error is not None:
                raise radio.scan_error
            self.running = True

        async def stop(self) -> None:
            self.running = False

    class FakeClient:
        def __init__(self, address_or_device, disconnected_callback=None, timeout=10.0, **kwargs) -> None:
            self.target = address_or_device
            self.disconnected_callback = disconnected_callback
            self.timeout = timeout
            self.kwargs = kwargs
            self.services = radio.services
            radio.clients.append(self)

        async def connect(self) -> None:
            if radio.connect_error is not None:
                raise radio.connect_error

        async def disconnect(self) -> None:
            pass

    monkeypatch.setattr(bleak_adapter, "BleakScanner", FakeScanner)
    monkeypatch.setattr(bleak_adapter, "BleakClient", FakeClient)
    return radio


async def _settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


def _device(address: str = "AA:BB:CC:00:11:22", name: str | None = "Widget") -> Any:
    return SimpleNamespace(address=address, name=name)


def _advertisement(local_name: str | None = None) -> Any:
    return SimpleNamespace(local_name=local_name)


def test_full_cycle_drives_registry(radio: FakeRadio) -> None:
    radio.services = [
        SimpleNamespace(
            uuid="0000180f-0000-1000-8000-00805f9b34fb",
            characteristics=[SimpleNamespace(uuid="00002a19-0000-1000-8000-00805f9b34fb")],
        )
    ]

    async def scenario() -> DeviceRegistry:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        registry = DeviceRegistry(adapter)
        registry.start()
        await _settle()
        assert registry.radio_state() == "Scanning..."

        scanner = radio.scanning()
        assert scanner.running
        assert scanner.service_uuids is None
        scanner.detection_callback(_device(), _advertisement())
        scanner.detection_callback(_device(), _advertisement())
        await _settle()

        device = registry.device("AA:BB:CC:00:11:22")
        assert device.name == "Widget"
        assert device.connection_state == ConnectionState.CONNECTED
        assert [s.name for s in device.services] == ["0000180f-0000-1000-8000-00805f9b34fb"]
        assert [c.name for c in device.services[0].characteristics] == [
            "00002a19-0000-1000-8000-00805f9b34fb"
        ]
        assert len(radio.clients) == 1

        client = radio.clients[0]
        client.disconnected_callback(client)
        assert registry.device("AA:BB:CC:00:11:22").connection_state == ConnectionState.DISCONNECTED

        await adapter.close()
        assert not scanner.running
        return registry

    registry = asyncio.run(scenario())
    assert len(registry.devices()) == 1


def test_powered_off_radio_waits_then_scans(radio: FakeRadio) -> None:
    radio.scan_error = BleakError("Bluetooth device is turned off")

    async def scenario() -> None:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=0.01))
        registry = DeviceRegistry(adapter)
        registry.start()
        await _settle()
        assert registry.radio_state() == "Waiting for Bluetooth PowerOn..."

        radio.scan_error = None
        await asyncio.sleep(0.05)
        await _settle()
        assert registry.radio_state() == "Scanning..."
        assert radio.scanning().running

        await adapter.close()

    asyncio.run(scenario())


def test_connect_failure_is_reported(radio: FakeRadio) -> None:
    radio.connect_error = BleakError("Device with address AA:BB:CC:00:11:22 was not found")

    async def scenario() -> DeviceRegistry:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        registry = DeviceRegistry(adapter)
        registry.start()
        await _settle()
        radio.scanning().detection_callback(_device(name=None), _advertisement(local_name="Adv Name"))
        await _settle()
        await adapter.close()
        return registry

    registry = asyncio.run(scenario())
    (device,) = registry.devices()
    assert device.name == "Adv Name"
    assert device.connection_state == ConnectionState.FAILED_TO_CONNECT
    assert device.services == ()


def test_configured_adapter_is_passed_to_bleak(radio: FakeRadio) -> None:
    async def scenario() -> None:
        adapter = BleakRadioAdapter(
            Settings(adapter="hci1", scanning_mode="passive", connect_timeout_s=4.0, power_poll_interval_s=60)
        )
        registry = DeviceRegistry(adapter)
        registry.start()
        await _settle()
        radio.scanning().detection_callback(_device(), _advertisement())
        await _settle()
        await adapter.close()

    asyncio.run(scenario())
    assert all(s.kwargs == {"bluez": {"adapter": "hci1"}} for s in radio.scanners)
    assert radio.scanning().scanning_mode == "passive"
    (client,) = radio.clients
    assert client.kwargs == {"bluez": {"adapter": "hci1"}}
    assert client.timeout == 4.0
    assert client.target.address == "AA:BB:CC:00:11:22"


def test_start_requires_running_loop() -> None:
    adapter = BleakRadioAdapter()
    with pytest.raises(AdapterError):
        adapter.start(DeviceRegistry(adapter))


def test_start_twice_raises(radio: FakeRadio) -> None:
    async def scenario() -> None:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        adapter.start(DeviceRegistry(adapter))
        try:
            with pytest.raises(AdapterError):
                adapter.start(DeviceRegistry(adapter))
        finally:
            await adapter.close()

    asyncio.run(scenario())


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Bluetooth device is turned off", AdapterState.POWERED_OFF),
        ("org.bluez.Error.NotAuthorized: Not authorized", AdapterState.UNAUTHORIZED),
        ("No Bluetooth adapters found.", AdapterState.UNSUPPORTED),
    ],
)
def test_adapter_state_for_error(message: str, expected: AdapterState) -> None:
    assert adapter_state_for_error(BleakError(message)) is expected


def _explorer(adapter: BleakRadioAdapter, fail_when) -> Explorer:
    explorer = Explorer(adapter=adapter, settings=Settings())

    def _listener() -> None:
        if fail_when(explorer.devices()):
            raise RuntimeError("display broke")

    explorer.on_changed(_listener)
    return explorer


def test_listener_error_during_detection_ends_run(radio: FakeRadio) -> None:
    async def scenario() -> None:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        explorer = _explorer(adapter, lambda devices: len(devices) > 0)

        async def deliver() -> None:
            await _settle()
            # bleak backends deliver advertisements as plain loop callbacks.
            asyncio.get_running_loop().call_soon(
                radio.scanning().detection_callback, _device(), _advertisement()
            )

        feeder = asyncio.ensure_future(deliver())
        with pytest.raises(RuntimeError, match="display broke"):
            await explorer.run(duration_s=1.0)
        await feeder
        assert not radio.scanning().running

    asyncio.run(scenario())


def test_listener_error_during_disconnect_ends_run(radio: FakeRadio) -> None:
    async def scenario() -> None:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        explorer = _explorer(
            adapter,
            lambda devices: any(d.connection_state == ConnectionState.DISCONNECTED for d in devices),
        )

        async def deliver() -> None:
            await _settle()
            radio.scanning().detection_callback(_device(), _advertisement())
            await _settle()
            client = radio.clients[0]
            asyncio.get_running_loop().call_soon(client.disconnected_callback, client)

        feeder = asyncio.ensure_future(deliver())
        with pytest.raises(RuntimeError, match="display broke"):
            await explorer.run(duration_s=1.0)
        await feeder

    asyncio.run(scenario())


def test_task_delivered_error_ends_run_and_closes(radio: FakeRadio) -> None:
    async def scenario() -> None:
        adapter = BleakRadioAdapter(Settings(power_poll_interval_s=60))
        explorer = _explorer(
            adapter,
            lambda devices: any(d.connection_state == ConnectionState.CONNECTED for d in devices),
        )

        async def deliver() -> None:
            await _settle()
            radio.scanning().detection_callback(_device(), _advertisement())

        feeder = asyncio.ensure_future(deliver())
        with pytest.raises(RuntimeError, match="display broke"):
            await explorer.run(duration_s=1.0)
        await feeder
        assert not radio.scanning().running
        assert explorer.devices()[0].connection_state == ConnectionState.CONNECTED

    asyncio.run(scenario())


def test_wait_requires_start() -> None:
    with pytest.raises(AdapterError):
        asyncio.run(BleakRadioAdapter().wait())
