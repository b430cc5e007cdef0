"""``envoyforge render [REVISION]``: write the generated build files only.

Renders the Bazel rc file and the image recipe exactly as a pipeline run
would, without fetching, building or publishing anything. The output
depends only on the settings and the revision.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from envoyforge.cli.commands._settings import load_settings
from envoyforge.core.errors import BuildError, InputError
from envoyforge.models.config import PipelineConfig, PipelineRun
from envoyforge.templating.bazelrc import render_bazelrc
from envoyforge.templating.dockerfile import render_dockerfile

console = Console()

_PLACEHOLDER_IMAGE = "envoyforge/envoy"


def render_cmd(
    revision: str = typer.Argument("main", help="Revision recorded in the image metadata."),
    output: Path = typer.Option(
        Path("."), "--output", "-o", help="Directory to write the files into."
    ),
    image: Optional[str] = typer.Option(
        None, "--image", "-i", help="Image repository path (default: $IMAGE_NAME)."
    ),
) -> None:
    """Render .bazelrc.local and the image recipe for REVISION."""
    settings = load_settings(console, image_name=image)
    config = PipelineConfig.from_settings(settings)

    try:
        pipeline_run = PipelineRun(
            revision=revision,
            registry=settings.registry,
            image_name=settings.image_name or _PLACEHOLDER_IMAGE,
        )
    except ValidationError as exc:
        console.print(
            f"[bold red]Invalid revision {escape(repr(revision))}:[/bold red] "
            f"{escape(str(exc))}"
        )
        raise typer.Exit(code=InputError.exit_code) from exc

    rc_path = output / config.build.rc_filename
    recipe_path = output / config.image.recipe_filename
    try:
        output.mkdir(parents=True, exist_ok=True)
        rc_path.write_text(render_bazelrc(config.build), encoding="utf-8")
        recipe_path.write_text(
            render_dockerfile(
                config.image,
                pipeline_run,
                PurePosixPath(config.build.output_path.name),
            ),
            encoding="utf-8",
        )
    except OSError as exc:
        console.print(f"[bold red]Could not write files:[/bold red] {exc}")
        raise typer.Exit(code=BuildError.exit_code) from exc

    console.print(f"[green]wrote[/green] {rc_path}")
    console.print(f"[green]wrote[/green] {recipe_path}")
