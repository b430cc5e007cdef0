"""Pipeline orchestrator: sequences the stages of one run.

The pipeline is an explicit ordered plan of (StageDefinition, stage)
pairs. ``Orchestrator.run()`` walks it in order and stops at the first
fatal failure: the failing stage is marked FAILED, every stage after it
BLOCKED, and nothing further executes. There is no retry and no rollback.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from envoyforge.config import ForgeSettings
from envoyforge.core.errors import PipelineError
from envoyforge.core.prerequisite_graph import PrerequisiteGraph
from envoyforge.core.retention import ArtifactRetentionStore
from envoyforge.core.runner import CommandRunner
from envoyforge.core.stage_machine import StageMachine
from envoyforge.models.config import PipelineConfig, PipelineRun
from envoyforge.models.reports import PipelineResult, StageReport
from envoyforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    StageDefinition,
    StageState,
)
from envoyforge.stages import get_stage
from envoyforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs the pipeline for one ``PipelineRun``.

    Parameters
    ----------
    pipeline_run:
        The run's parameters (revision, registry coordinates, timestamp).
    config:
        Policy set. Derived from ``settings`` if not provided.
    settings:
        Environment-driven settings, including registry credentials.
    runner:
        Command runner shared by all stages.
    retention_store:
        Store the final stage retains the binary in. Defaults to one at
        the retention policy's path.
    """

    def __init__(
        self,
        pipeline_run: PipelineRun,
        config: PipelineConfig | None = None,
        *,
        settings: ForgeSettings | None = None,
        runner: CommandRunner | None = None,
        retention_store: ArtifactRetentionStore | None = None,
    ) -> None:
        self.settings = settings or ForgeSettings()
        self.config = config or PipelineConfig.from_settings(self.settings)
        self.pipeline_run = pipeline_run
        self.runner = runner or CommandRunner(
            use_sudo=self.config.toolchain.use_sudo,
            timeout=self.settings.command_timeout_seconds,
        )

        self.graph = PrerequisiteGraph(DEFAULT_STAGE_DEFINITIONS)
        self.stage_machine = StageMachine(self.graph)
        self._stages: dict[str, BaseStage] = {
            sid: get_stage(sid) for sid in self.graph.stage_ids
        }

        self.run_context: dict[str, Any] = {
            "run": self.pipeline_run,
            "config": self.config,
            "settings": self.settings,
            "runner": self.runner,
            "stage_results": {},
        }
        if retention_store is not None:
            self.run_context["retention_store"] = retention_store

    @property
    def run_id(self) -> str:
        return self.pipeline_run.run_id

    @property
    def plan(self) -> list[tuple[StageDefinition, BaseStage]]:
        """The ordered stage descriptors this orchestrator will execute."""
        return [
            (self.graph.get_stage_definition(sid), self._stages[sid])
            for sid in self.graph.stage_ids
        ]

    def register_stage(self, stage: BaseStage) -> None:
        """Replace the implementation of a planned stage."""
        if stage.stage_id not in self._stages:
            raise KeyError(f"{stage.stage_id!r} is not part of the pipeline plan")
        self._stages[stage.stage_id] = stage

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self) -> PipelineResult:
        """Execute every stage in order, stopping at the first failure."""
        run = self.pipeline_run
        logger.info(
            "run %s: revision %s -> %s", run.run_id, run.revision, run.image_repository
        )

        started: dict[str, datetime] = {}
        finished: dict[str, datetime] = {}
        errors: dict[str, str] = {}
        failure: tuple[str, PipelineError] | None = None

        for definition, stage in self.plan:
            sid = definition.stage_id
            if self.stage_machine.get_current_state(sid) != StageState.NOT_STARTED:
                continue

            self.stage_machine.transition(sid, StageState.RUNNING)
            started[sid] = datetime.now(timezone.utc)
            try:
                stage.run_stage(self.run_context)
            except PipelineError as exc:
                finished[sid] = datetime.now(timezone.utc)
                errors[sid] = str(exc)
                self.stage_machine.transition(sid, StageState.FAILED, reason=str(exc))
                failure = (sid, exc)
                logger.error("run %s aborted at %s: %s", run.run_id, sid, exc)
                break

            finished[sid] = datetime.now(timezone.utc)
            self.stage_machine.transition(sid, StageState.PASSED)

        result = self._build_result(started, finished, errors, failure)
        if result.succeeded:
            logger.info("run %s succeeded", run.run_id)
        return result

    def get_states(self) -> dict[str, StageState]:
        return self.stage_machine.get_all_states()

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    def _build_result(
        self,
        started: dict[str, datetime],
        finished: dict[str, datetime],
        errors: dict[str, str],
        failure: tuple[str, PipelineError] | None,
    ) -> PipelineResult:
        stage_results: dict[str, dict[str, Any]] = self.run_context["stage_results"]
        states = self.stage_machine.get_all_states()

        reports = [
            StageReport(
                stage_id=definition.stage_id,
                display_name=definition.display_name,
                state=states[definition.stage_id],
                started_at=started.get(definition.stage_id),
                finished_at=finished.get(definition.stage_id),
                output_hash=stage_results.get(definition.stage_id, {}).get("_output_hash", ""),
                error=errors.get(definition.stage_id, ""),
            )
            for definition, _ in self.plan
        ]

        def _output(stage_id: str, key: str) -> Any:
            return stage_results.get(stage_id, {}).get(key)

        fields: dict[str, Any] = {}
        if failure is not None:
            failed_stage, exc = failure
            fields = {
                "failed_stage": failed_stage,
                "error_kind": exc.kind,
                "error_message": str(exc),
                "error_detail": exc.detail,
                "error_exit_code": exc.exit_code,
            }

        return PipelineResult(
            run=self.pipeline_run,
            stages=reports,
            transitions=self.stage_machine.transitions,
            binary=_output("s4_binary_build", "binary"),
            image=_output("s5_image_assembly", "image"),
            published=_output("s6_publish", "published"),
            retained=_output("s7_artifact_retention", "retained"),
            **fields,
        )
