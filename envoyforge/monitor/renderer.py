"""Rich terminal renderer for pipeline run reports.

Color scheme
------------
- green     : PASSED
- red       : FAILED
- yellow    : RUNNING
- dim       : NOT_STARTED
- bold red  : BLOCKED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from envoyforge.models.artifacts import RetainedArtifact
from envoyforge.models.reports import PipelineResult
from envoyforge.models.stages import StageState

_STATE_STYLES: dict[StageState, str] = {
    StageState.PASSED: "bold green",
    StageState.FAILED: "bold red",
    StageState.RUNNING: "bold yellow",
    StageState.NOT_STARTED: "dim",
    StageState.BLOCKED: "bold red",
}

_STATE_LABELS: dict[StageState, str] = {
    StageState.PASSED: "[green]PASSED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.NOT_STARTED: "[dim]NOT STARTED[/dim]",
    StageState.BLOCKED: "[bold red]BLOCKED[/bold red]",
}


class RunRenderer:
    """Renders ``PipelineResult`` and retention listings as Rich output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_result(self, result: PipelineResult) -> Panel:
        table = self._build_stage_table(result)
        run = result.run

        summary = Text.assemble(
            ("Run:", "bold"),
            f" {run.run_id}  |  ",
            ("Revision:", "bold"),
            f" {run.revision}  |  ",
            ("Image:", "bold"),
            f" {run.image_repository}  |  ",
        )
        if result.succeeded:
            summary.append("succeeded", style="bold green")
        else:
            summary.append("failed", style="bold red")
            summary.append(f" ({result.error_kind or 'error'}, exit {result.exit_code})")
        lines: list[Text] = [summary]

        if result.published is not None:
            for ref in result.published.refs:
                lines.append(Text.assemble(("Published:", "bold"), f" {ref}"))
        if result.retained is not None:
            lines.append(
                Text.assemble(
                    ("Retained:", "bold"),
                    f" {result.retained.name} until {result.retained.expires_at:%Y-%m-%d}",
                )
            )

        border = "green" if result.succeeded else "red"
        return Panel(
            Group(table, Text(""), *lines),
            title="[bold]envoyforge[/bold]",
            border_style=border,
            padding=(1, 2),
        )

    def _build_stage_table(self, result: PipelineResult) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=24)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Time", justify="right", width=10)
        table.add_column("Details", min_width=20)

        for index, stage in enumerate(result.stages, start=1):
            style = _STATE_STYLES.get(stage.state, "")
            duration = stage.duration_seconds
            table.add_row(
                str(index),
                Text(stage.display_name, style=style),
                _STATE_LABELS.get(stage.state, stage.state.value),
                f"{duration:.1f}s" if duration is not None else "[dim]-[/dim]",
                # Error text may contain brackets; keep it out of markup.
                Text(stage.error, style="red") if stage.error else Text("-", style="dim"),
            )
        return table

    def print_result(self, result: PipelineResult) -> None:
        self.console.print(self.render_result(result))

    def print_failure_detail(self, result: PipelineResult) -> None:
        """Print the failing tool's raw output exactly as it was produced."""
        if result.error_detail:
            self.console.print(
                Text(result.error_detail), markup=False, highlight=False
            )

    def render_artifacts(self, artifacts: list[RetainedArtifact]) -> Table:
        table = Table(title="Retained Artifacts")
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Digest")
        table.add_column("Expires", style="green")
        for artifact in artifacts:
            table.add_row(
                artifact.name,
                f"{artifact.size_bytes:,}",
                artifact.content_address.removeprefix("sha256:")[:12],
                f"{artifact.expires_at:%Y-%m-%d %H:%M}",
            )
        return table
