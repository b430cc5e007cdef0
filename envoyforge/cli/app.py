"""Main Typer application: imports and registers all CLI commands.

Entry point: ``envoyforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from envoyforge import __version__
from envoyforge.cli.commands.artifacts import artifacts_app
from envoyforge.cli.commands.render import render_cmd
from envoyforge.cli.commands.run import run_cmd
from envoyforge.config import ForgeSettings

app = typer.Typer(
    name="envoyforge",
    help="envoyforge: build Envoy from source and publish it as a container image.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="run", help="Run the full build-and-publish pipeline.")(run_cmd)
app.command(name="render", help="Render the generated build files without building.")(
    render_cmd
)
app.add_typer(artifacts_app, name="artifacts")


def configure_logging(level: str) -> None:
    """Route log records through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (default: $ENVOYFORGE_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level or ForgeSettings().log_level)


@app.command(name="version", help="Show the envoyforge version.")
def version_cmd() -> None:
    typer.echo(f"envoyforge {__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
