"""CLI — Daemon lifecycle commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import typer
from rich.console import Console

app = typer.Typer(help="Run the tripwire daemon and manage its configuration lock.")
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to the configuration file (default: $TRIPWIRE_CONFIG or tripwire.yml)."),
]


def _config_path(config: Path | None) -> Path:
    from tripwire.config import get_settings

    return config if config is not None else get_settings().config


@app.command("run")
def run(
    config: ConfigOption = None,
    debug: bool = typer.Option(False, "--debug", help="Log at debug level."),
    log_format: Annotated[
        str | None, typer.Option("--log-format", help="Console log format: console or json.")
    ] = None,
) -> None:
    """Start the daemon in the foreground."""
    from tripwire.config import get_settings
    from tripwire.daemon import start_daemon

    settings = get_settings()
    if log_format is not None:
        if log_format not in ("console", "json"):
            console.print(f"[red]Unknown log format: {log_format}[/red]")
            raise typer.Exit(2)
        fmt: Literal["console", "json"] = "json" if log_format == "json" else "console"
        settings = settings.model_copy(update={"log_format": fmt})

    code = start_daemon(_config_path(config), settings, debug=debug)
    raise typer.Exit(int(code))


@app.command("setup")
def setup(config: ConfigOption = None) -> None:
    """Create a configuration file with default settings."""
    from tripwire.daemon import setup as setup_config
    from tripwire.exit_codes import ExitCode
    from tripwire.logging import configure_logging

    configure_logging()
    path = _config_path(config)
    code = setup_config(path)
    if code == ExitCode.OK:
        console.print(f"[bold green]Configuration file created: {path}[/bold green]")
    raise typer.Exit(int(code))


@app.command("unlock")
def unlock(config: ConfigOption = None) -> None:
    """Forcefully release the configuration lock and exit."""
    from tripwire.daemon import unlock as unlock_config
    from tripwire.exit_codes import ExitCode
    from tripwire.logging import configure_logging

    configure_logging()
    path = _config_path(config)
    code = unlock_config(path)
    if code == ExitCode.OK:
        console.print(f"[green]Configuration file unlocked: {path}[/green]")
    raise typer.Exit(int(code))
