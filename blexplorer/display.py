"""Text tree rendering of the registry snapshot."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import typer

from blexplorer.core.model import Device
from blexplorer.core.registry import DeviceRegistry

_UNNAMED = "<unnamed>"


def render_tree(radio_state: str, devices: Sequence[Device]) -> list[str]:
    lines = [radio_state]
    for device in devices:
        lines.append(f"{device.name or _UNNAMED} ({device.id})")
        lines.append(f"  {device.connection_state.value}")
        for service in device.services:
            lines.append(f"  Service: {service.name}")
            for characteristic in service.characteristics:
                lines.append(f"    Characteristic: {characteristic.name}")
    return lines


class TreeDisplay:
    """Redraws the whole device tree every time the registry changes."""

    def __init__(
        self,
        registry: DeviceRegistry,
        *,
        echo: Callable[[str], object] = typer.echo,
        clear: bool = True,
    ) -> None:
        self._registry = registry
        self._echo = echo
        self._clear = clear
        self._detach: Callable[[], None] | None = None

    def attach(self) -> None:
        if self._detach is None:
            self._detach = self._registry.on_changed(self.redraw)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def redraw(self) -> None:
        if self._clear:
            typer.clear()
        lines = render_tree(self._registry.radio_state(), self._registry.devices())
        self._echo("\n".join(lines))
