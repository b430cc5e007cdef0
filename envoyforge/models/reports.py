"""Run report models: what a finished (or aborted) pipeline run produced."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from envoyforge.models.artifacts import (
    BinaryArtifact,
    ImageDefinition,
    PublishedImage,
    RetainedArtifact,
)
from envoyforge.models.config import PipelineRun
from envoyforge.models.stages import StageState, StageTransition


class StageReport(BaseModel):
    """Final state of one stage within a run."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    state: StageState
    started_at: datetime | None = None
    finished_at: datetime | None = None
    output_hash: str = ""
    error: str = ""

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class PipelineResult(BaseModel):
    """Outcome of one pipeline run.

    ``exit_code`` is 0 only when every stage passed; otherwise it is the
    exit code of the error category that aborted the run.
    """

    model_config = ConfigDict(frozen=True)

    run: PipelineRun
    stages: list[StageReport]
    transitions: list[StageTransition] = []
    failed_stage: str | None = None
    error_kind: str = ""
    error_message: str = ""
    error_detail: str = ""
    error_exit_code: int = 0
    binary: BinaryArtifact | None = None
    image: ImageDefinition | None = None
    published: PublishedImage | None = None
    retained: RetainedArtifact | None = None

    @property
    def succeeded(self) -> bool:
        return self.failed_stage is None and all(
            s.state == StageState.PASSED for s in self.stages
        )

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return 0
        return self.error_exit_code or 1

    def state_of(self, stage_id: str) -> StageState:
        for report in self.stages:
            if report.stage_id == stage_id:
                return report.state
        raise KeyError(stage_id)
