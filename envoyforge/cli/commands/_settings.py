"""Shared settings loading for CLI commands."""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from envoyforge.config import ForgeSettings
from envoyforge.core.errors import ConfigurationError


def load_settings(console: Console, **overrides: Any) -> ForgeSettings:
    """Build settings from the environment plus explicit CLI overrides.

    Options left unset on the command line (``None``) fall through to the
    environment and ``.env`` values.
    """
    given = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ForgeSettings(**given)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid settings:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=ConfigurationError.exit_code) from exc
