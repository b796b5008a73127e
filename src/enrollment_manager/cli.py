"""Command line entry point for Enrollment Manager."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from enrollment_manager import __version__
from enrollment_manager.config import ConfigError, Settings, load_settings
from enrollment_manager.logging import setup_logging


def _load(config_path: Path | None) -> Settings:
    try:
        return load_settings(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Enrollment Manager - seat reservation for enrollment sessions."""
    pass


@main.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to a YAML settings file",
)
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def serve(config_path: Path | None, host: str, port: int, log_level: str | None) -> None:
    """Run the REST API with the expired-lock reaper."""
    import uvicorn  # noqa: PLC0415

    from enrollment_manager.api.app import create_app  # noqa: PLC0415

    settings = _load(config_path)
    setup_logging(level=log_level)
    uvicorn.run(create_app(settings), host=host, port=port)


@main.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to a YAML settings file",
)
def purge(config_path: Path | None) -> None:
    """Cancel every pending registration whose seat lock has expired."""
    from enrollment_manager.container import build_container  # noqa: PLC0415

    settings = _load(config_path)
    setup_logging(console=False)
    container = build_container(settings)
    try:
        purged = container.seat_locks.purge_expired()
    finally:
        container.close()
    click.echo(f"Released {purged} expired seat lock(s)")


if __name__ == "__main__":
    main()
