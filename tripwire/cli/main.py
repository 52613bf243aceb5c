"""tripwire CLI — Entry point.

Usage:
    tripwire daemon run [--config PATH] [--debug]
    tripwire daemon setup [--config PATH]
    tripwire daemon unlock [--config PATH]
    tripwire projects list [--config PATH]
    tripwire projects check [--config PATH]
"""

from __future__ import annotations

import typer

from tripwire.cli.commands import daemon, projects

app = typer.Typer(
    name="tripwire",
    help="tripwire — run project pipelines when their triggers fire.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.add_typer(daemon.app, name="daemon")
app.add_typer(projects.app, name="projects")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
