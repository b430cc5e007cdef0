"""Abstract base stage with an enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only
``execute()``. The ``run_stage()`` wrapper is **not overridable**: it
enforces the canonical lifecycle ordering:

    execute -> compute_output_hash -> record

Pipeline errors raised by ``execute()`` propagate unchanged; any other
exception is wrapped in ``StageExecutionError``.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, final

from pydantic import BaseModel

from envoyforge.core.errors import PipelineError, StageExecutionError
from envoyforge.core.hasher import compute_output_hash
from envoyforge.core.runner import CommandFailedError, CommandResult, CommandRunner
from envoyforge.models.config import PipelineConfig, PipelineRun

logger = logging.getLogger(__name__)


class BaseStage(abc.ABC):
    """Abstract base for all envoyforge pipeline stages.

    Subclasses **must** implement:
        * ``stage_id``: unique identifier (e.g. ``"s4_binary_build"``).
        * ``display_name``: human-readable name shown in run reports.
        * ``execute(run_context)``: the stage's core logic.

    Subclasses **must not** override ``run_stage()``.
    """

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-readable display name."""
        ...

    @abc.abstractmethod
    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Execute the stage's core logic.

        Parameters
        ----------
        run_context:
            Run-wide state: ``run``, ``config``, ``runner``, ``settings``
            and the results of earlier stages under ``stage_results``.

        Returns
        -------
        dict:
            Structured result dict appropriate to the stage's purpose.
        """
        ...

    # ------------------------------------------------------------------
    # Lifecycle (not overridable)
    # ------------------------------------------------------------------

    @final
    def run_stage(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Execute the full stage lifecycle.  **Do not override.**

        Returns the result dict produced by ``execute()``, augmented with
        an ``_output_hash`` key.
        """
        logger.info("%s [%s] starting", self.display_name, self.stage_id)
        try:
            result = self.execute(run_context)
        except PipelineError as exc:
            logger.error("%s [%s] failed: %s", self.display_name, self.stage_id, exc)
            raise
        except Exception as exc:
            logger.error(
                "%s [%s] execution failed: %s", self.display_name, self.stage_id, exc
            )
            raise StageExecutionError(f"Stage {self.stage_id} failed: {exc}") from exc

        output_hash = compute_output_hash(self.stage_id, _hashable(result))
        run_context.setdefault("stage_results", {})[self.stage_id] = result
        result["_output_hash"] = output_hash
        logger.info(
            "%s [%s] passed, output=%s",
            self.display_name,
            self.stage_id,
            output_hash[:12],
        )
        return result

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @staticmethod
    def run_of(run_context: dict[str, Any]) -> PipelineRun:
        return run_context["run"]

    @staticmethod
    def config_of(run_context: dict[str, Any]) -> PipelineConfig:
        return run_context["config"]

    @staticmethod
    def runner_of(run_context: dict[str, Any]) -> CommandRunner:
        return run_context["runner"]

    @staticmethod
    def result_of(run_context: dict[str, Any], stage_id: str) -> dict[str, Any]:
        """Return an earlier stage's result, failing loudly if it is absent."""
        try:
            return run_context["stage_results"][stage_id]
        except KeyError:
            raise StageExecutionError(
                f"result of {stage_id} is not available"
            ) from None

    def command(
        self,
        run_context: dict[str, Any],
        argv: Sequence[str],
        error: type[PipelineError],
        message: str,
        *,
        cwd: Path | None = None,
        **kwargs: Any,
    ) -> CommandResult:
        """Run a command; a failure becomes ``error`` carrying the raw output."""
        try:
            return self.runner_of(run_context).run(argv, cwd=cwd, **kwargs)
        except CommandFailedError as exc:
            raise error(f"{message}: {exc}", detail=exc.result.output) from exc

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"


def _hashable(result: dict[str, Any]) -> dict[str, Any]:
    """Strip internal keys and reduce models and paths to JSON values."""
    hashable: dict[str, Any] = {}
    for key, value in result.items():
        if key.startswith("_"):
            continue
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        elif isinstance(value, Path):
            value = value.as_posix()
        hashable[key] = value
    return hashable
