"""Unit tests for BaseStage lifecycle enforcement and the stage registry."""

from __future__ import annotations

from typing import Any

import pytest

from envoyforge.core.errors import BuildError, PipelineError, StageExecutionError
from envoyforge.stages import STAGE_REGISTRY, get_stage
from envoyforge.stages.base import BaseStage

# ---------------------------------------------------------------------------
# Concrete test stage implementations
# ---------------------------------------------------------------------------


class _PassingStage(BaseStage):
    """A minimal stage that always passes."""

    @property
    def stage_id(self) -> str:
        return "test_passing"

    @property
    def display_name(self) -> str:
        return "Passing Test Stage"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        return {"status": "passed", "message": "hello from passing stage"}


class _CrashingStage(BaseStage):
    """A stage that raises something outside the error taxonomy."""

    @property
    def stage_id(self) -> str:
        return "test_crashing"

    @property
    def display_name(self) -> str:
        return "Crashing Test Stage"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        raise ValueError("Intentional failure for testing")


class _BuildFailingStage(BaseStage):
    """A stage that raises a categorized pipeline error."""

    @property
    def stage_id(self) -> str:
        return "test_build_failing"

    @property
    def display_name(self) -> str:
        return "Build Failing Test Stage"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        raise BuildError("compile failed", detail="ERROR: raw bazel output")


# ---------------------------------------------------------------------------
# Test: lifecycle
# ---------------------------------------------------------------------------


class TestStageLifecycle:
    """run_stage() records results and normalizes failures."""

    def test_result_is_recorded_with_output_hash(self):
        context: dict[str, Any] = {}
        result = _PassingStage().run_stage(context)
        assert result["status"] == "passed"
        assert len(result["_output_hash"]) == 64
        assert context["stage_results"]["test_passing"] is result

    def test_output_hash_is_deterministic(self):
        first = _PassingStage().run_stage({})
        second = _PassingStage().run_stage({})
        assert first["_output_hash"] == second["_output_hash"]

    def test_unexpected_exception_is_wrapped(self):
        with pytest.raises(StageExecutionError) as excinfo:
            _CrashingStage().run_stage({})
        assert "test_crashing" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_pipeline_error_passes_through(self):
        with pytest.raises(BuildError) as excinfo:
            _BuildFailingStage().run_stage({})
        assert excinfo.value.detail == "ERROR: raw bazel output"
        assert excinfo.value.exit_code == 4

    def test_failed_stage_records_nothing(self):
        context: dict[str, Any] = {"stage_results": {}}
        with pytest.raises(PipelineError):
            _CrashingStage().run_stage(context)
        assert context["stage_results"] == {}

    def test_missing_upstream_result(self):
        with pytest.raises(StageExecutionError):
            BaseStage.result_of({"stage_results": {}}, "s4_binary_build")

    def test_repr(self):
        assert repr(_PassingStage()) == "<_PassingStage stage_id='test_passing'>"


class TestStageRegistry:
    def test_registry_covers_every_stage(self):
        assert list(STAGE_REGISTRY) == [
            "s1_source_fetch",
            "s2_environment",
            "s3_build_config",
            "s4_binary_build",
            "s5_image_assembly",
            "s6_publish",
            "s7_artifact_retention",
        ]

    def test_get_stage_returns_instances(self):
        stage = get_stage("s4_binary_build")
        assert stage.stage_id == "s4_binary_build"
        assert stage.display_name == "Binary Build"

    def test_unknown_stage(self):
        with pytest.raises(KeyError):
            get_stage("s0_intake")
