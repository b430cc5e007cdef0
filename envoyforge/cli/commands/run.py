"""``envoyforge run [REVISION]``: run the full pipeline.

Exits 0 only when every stage passed. On failure the failing tool's raw
output is printed unmodified and the exit status names the error
category.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from envoyforge.cli.commands._settings import load_settings
from envoyforge.core.errors import ConfigurationError, InputError
from envoyforge.core.orchestrator import Orchestrator
from envoyforge.models.config import PipelineConfig, PipelineRun
from envoyforge.monitor.renderer import RunRenderer

console = Console()


def run_cmd(
    revision: str = typer.Argument(
        "main",
        help='Envoy revision to build (e.g. v1.28.0, or "main" for latest).',
    ),
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", "-w", help="Directory the Envoy source is checked out into."
    ),
    registry: Optional[str] = typer.Option(
        None, "--registry", help="Registry host (default: $REGISTRY or ghcr.io)."
    ),
    image: Optional[str] = typer.Option(
        None, "--image", "-i", help="Image repository path (default: $IMAGE_NAME)."
    ),
    retention_dir: Optional[Path] = typer.Option(
        None, "--retention-dir", help="Directory of the artifact retention store."
    ),
    clean: Optional[bool] = typer.Option(
        None, "--clean/--no-clean", help="Expunge Bazel state before building."
    ),
    sudo: Optional[bool] = typer.Option(
        None, "--sudo/--no-sudo", help="Run package installs through sudo."
    ),
) -> None:
    """Fetch, build, package, publish and retain Envoy at REVISION."""
    settings = load_settings(
        console,
        workspace=workspace,
        registry=registry,
        image_name=image,
        retention_dir=retention_dir,
        clean_before_build=clean,
        use_sudo=sudo,
    )

    if not settings.image_name:
        console.print(
            "[bold red]No image name:[/bold red] pass --image or set IMAGE_NAME "
            "(GITHUB_REPOSITORY is used when present)."
        )
        raise typer.Exit(code=ConfigurationError.exit_code)

    try:
        pipeline_run = PipelineRun(
            revision=revision,
            registry=settings.registry,
            image_name=settings.image_name,
        )
    except ValidationError as exc:
        console.print(
            f"[bold red]Invalid revision {escape(repr(revision))}:[/bold red] "
            f"{escape(str(exc))}"
        )
        raise typer.Exit(code=InputError.exit_code) from exc

    orchestrator = Orchestrator(
        pipeline_run,
        PipelineConfig.from_settings(settings),
        settings=settings,
    )
    result = orchestrator.run()

    renderer = RunRenderer(console=console)
    console.print()
    renderer.print_result(result)
    if not result.succeeded:
        renderer.print_failure_detail(result)
        raise typer.Exit(code=result.exit_code)
