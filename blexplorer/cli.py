"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from blexplorer.api import Explorer
from blexplorer.core.config import config_path, load_settings
from blexplorer.core.errors import BlexplorerError
from blexplorer.display import TreeDisplay

app = typer.Typer(help="Scan, connect to, and enumerate nearby Bluetooth LE peripherals")


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("watch")
def watch(
    duration: float | None = typer.Option(None, "--duration", help="Stop after SECONDS"),
    no_clear: bool = typer.Option(False, "--no-clear", help="Append redraws instead of clearing"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Scan, connect to every peripheral found, and render the live device tree."""
    try:
        settings = load_settings()
        _configure_logging(settings.log_level, verbose)
        explorer = Explorer(settings=settings)
        display = TreeDisplay(explorer.registry, clear=not no_clear)
        display.attach()
        display.redraw()
        asyncio.run(explorer.run(duration))
    except BlexplorerError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None


@app.command("config")
def show_config() -> None:
    """Print the effective settings and where they are read from."""
    try:
        path = config_path()
        settings = load_settings(path)
        source = path if path.exists() else f"{path} (not found, using defaults)"
        typer.echo(f"Config: {source}")
        typer.echo(f"  adapter: {settings.adapter or '<default>'}")
        typer.echo(f"  scanning_mode: {settings.scanning_mode}")
        typer.echo(f"  connect_timeout_s: {settings.connect_timeout_s}")
        typer.echo(f"  power_poll_interval_s: {settings.power_poll_interval_s}")
        typer.echo(f"  log_level: {settings.log_level}")
    except BlexplorerError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
