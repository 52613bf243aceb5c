"""CLI — Project inspection commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from tripwire.releases import ReleaseSource
    from tripwire.store import ConfigurationStore

app = typer.Typer(help="Inspect configured projects and their triggers.")
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]


def _load(config: Path | None) -> "ConfigurationStore":
    from tripwire.config import get_settings
    from tripwire.exceptions import ConfigurationError
    from tripwire.exit_codes import ExitCode
    from tripwire.store import ConfigurationStore

    store = ConfigurationStore(config if config is not None else get_settings().config)
    try:
        store.load()
    except ConfigurationError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(int(ExitCode.CONFIG_NOT_FOUND))
    return store


@app.command("list")
def list_projects(config: ConfigOption = None) -> None:
    """List projects with their triggers and dependencies."""
    from tripwire.exceptions import ConfigurationSchemaError

    store = _load(config)

    table = Table(title=f"Projects ({store.location})")
    table.add_column("Project", style="cyan")
    table.add_column("Triggers")
    table.add_column("Depends on")
    table.add_column("Commands", justify="right")
    table.add_column("Cleanup", justify="right")

    for name in store.project_names():
        try:
            project = store.get_project(name)
        except ConfigurationSchemaError as exc:
            table.add_row(name, f"[red]{exc.reason}[/red]", "-", "-", "-")
            continue
        table.add_row(
            name,
            "\n".join(project.triggers) or "-",
            ", ".join(project.depends_on) or "-",
            str(len(project.commands)),
            str(len(project.cleanup)),
        )
    console.print(table)
    console.print(f"Lock holder: {store.lock_holder or 'unlocked'}")


async def _evaluate_all(store: "ConfigurationStore", source: "ReleaseSource") -> list[tuple[str, str, str, str]]:
    from tripwire.exceptions import ConfigurationSchemaError, TriggerError
    from tripwire.triggers.evaluator import TriggerEvaluator

    evaluator = TriggerEvaluator(source)
    rows: list[tuple[str, str, str, str]] = []
    for name in store.project_names():
        try:
            project = store.get_project(name)
        except ConfigurationSchemaError as exc:
            rows.append((name, "-", "[red]invalid[/red]", exc.reason))
            continue
        for raw in project.triggers:
            try:
                evaluation = await evaluator.evaluate(raw)
            except TriggerError as exc:
                rows.append((name, raw, "[red]error[/red]", exc.message))
                continue
            if evaluation is None:
                rows.append((name, raw, "[yellow]unknown[/yellow]", "-"))
            elif evaluation.fire:
                detail = f"{evaluation.old_value} → {evaluation.new_value}" if evaluation.new_value else "-"
                rows.append((name, raw, "[green]fire[/green]", detail))
            else:
                rows.append((name, raw, "skip", evaluation.new_value or "-"))
    return rows


@app.command("check")
def check(config: ConfigOption = None) -> None:
    """Evaluate every trigger once without running commands or saving anything."""
    from tripwire.config import get_settings
    from tripwire.releases import GitHubReleaseSource

    store = _load(config)

    async def _run() -> list[tuple[str, str, str, str]]:
        async with GitHubReleaseSource.from_settings(get_settings()) as source:
            return await _evaluate_all(store, source)

    rows = asyncio.run(_run())

    table = Table(title="Trigger evaluation (dry run)")
    table.add_column("Project", style="cyan")
    table.add_column("Trigger")
    table.add_column("Decision")
    table.add_column("Detail")
    for row in rows:
        table.add_row(*row)
    console.print(table)
