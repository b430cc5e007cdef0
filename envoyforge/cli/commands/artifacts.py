"""``envoyforge artifacts``: inspect and prune the retention store."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from envoyforge.cli.commands._settings import load_settings
from envoyforge.core.errors import RetentionError
from envoyforge.core.retention import (
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    ArtifactRetentionStore,
)
from envoyforge.monitor.renderer import RunRenderer

console = Console()

artifacts_app = typer.Typer(
    help="Inspect and prune retained build artifacts.",
    no_args_is_help=True,
)

_STORE_OPTION = typer.Option(
    None, "--store", "-s", help="Retention store directory (default: settings)."
)


def _open_store(store: Path | None) -> ArtifactRetentionStore:
    settings = load_settings(console, retention_dir=store)
    return ArtifactRetentionStore(settings.retention_dir)


@artifacts_app.command("list", help="List retained artifacts.")
def list_cmd(store: Optional[Path] = _STORE_OPTION) -> None:
    artifacts = _open_store(store).list_artifacts()
    if not artifacts:
        console.print("[dim]No artifacts retained.[/dim]")
        return
    console.print(RunRenderer(console=console).render_artifacts(artifacts))


@artifacts_app.command("path", help="Print the file path of a retained artifact.")
def path_cmd(
    name: str = typer.Argument(..., help="Artifact name, e.g. envoy-static-v1.28.0."),
    store: Optional[Path] = _STORE_OPTION,
) -> None:
    retention = _open_store(store)
    try:
        path = retention.retrieve(name)
    except ArtifactNotFoundError:
        console.print(f"[bold red]No artifact named[/bold red] {escape(name)}")
        raise typer.Exit(code=RetentionError.exit_code) from None
    except ArtifactIntegrityError as exc:
        console.print(f"[bold red]Artifact is damaged:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=RetentionError.exit_code) from exc
    if retention.get(name).is_expired():
        console.print(f"[yellow]{escape(name)} has expired and will be pruned.[/yellow]")
    typer.echo(str(path))


@artifacts_app.command("prune", help="Delete artifacts past their retention window.")
def prune_cmd(store: Optional[Path] = _STORE_OPTION) -> None:
    dropped = _open_store(store).prune()
    if not dropped:
        console.print("[dim]Nothing to prune.[/dim]")
        return
    for name in dropped:
        console.print(f"[red]pruned[/red] {escape(name)}")
