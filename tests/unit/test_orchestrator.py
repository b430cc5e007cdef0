"""Tests for the Orchestrator: stage sequencing, fail-fast, result assembly."""

from __future__ import annotations

from typing import Any

import pytest

from envoyforge.core.errors import RetentionError, ToolchainError
from envoyforge.core.orchestrator import Orchestrator
from envoyforge.models.stages import StageState
from envoyforge.stages.base import BaseStage


class _BrokenEnvironmentStage(BaseStage):
    @property
    def stage_id(self) -> str:
        return "s2_environment"

    @property
    def display_name(self) -> str:
        return "Environment Preparation"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        raise ToolchainError("clang-14 is not installable", detail="E: no candidate")


class _BrokenRetentionStage(BaseStage):
    @property
    def stage_id(self) -> str:
        return "s7_artifact_retention"

    @property
    def display_name(self) -> str:
        return "Artifact Retention"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        raise RetentionError("artifact store is read-only")


class _StrayStage(_BrokenEnvironmentStage):
    @property
    def stage_id(self) -> str:
        return "s9_stray"


class TestOrchestrator:
    def test_plan_is_ordered(self, make_orchestrator):
        orch = make_orchestrator()
        assert [d.stage_id for d, _ in orch.plan] == [
            "s1_source_fetch",
            "s2_environment",
            "s3_build_config",
            "s4_binary_build",
            "s5_image_assembly",
            "s6_publish",
            "s7_artifact_retention",
        ]
        assert all(stage.stage_id == d.stage_id for d, stage in orch.plan)

    def test_successful_run(self, make_orchestrator):
        orch = make_orchestrator("v1.28.0")
        result = orch.run()

        assert result.succeeded
        assert result.exit_code == 0
        assert all(s.state == StageState.PASSED for s in result.stages)
        assert all(s.output_hash for s in result.stages)
        assert result.binary is not None
        assert result.image is not None
        assert result.published.refs == [
            "ghcr.io/acme/envoy:latest",
            "ghcr.io/acme/envoy:v1.28.0",
        ]
        assert result.retained.name == "envoy-static-v1.28.0"
        assert orch.get_states()["s7_artifact_retention"] == StageState.PASSED

    def test_fail_fast(self, make_orchestrator, fake_runner):
        orch = make_orchestrator()
        orch.register_stage(_BrokenEnvironmentStage())
        result = orch.run()

        assert not result.succeeded
        assert result.failed_stage == "s2_environment"
        assert result.error_kind == "environment"
        assert result.error_detail == "E: no candidate"
        assert result.exit_code == 3
        assert result.state_of("s1_source_fetch") == StageState.PASSED
        assert result.state_of("s2_environment") == StageState.FAILED
        for sid in (
            "s3_build_config",
            "s4_binary_build",
            "s5_image_assembly",
            "s6_publish",
            "s7_artifact_retention",
        ):
            assert result.state_of(sid) == StageState.BLOCKED
        assert not fake_runner.called("bazel")
        assert result.binary is None and result.published is None

    def test_failed_stage_report_carries_error(self, make_orchestrator):
        orch = make_orchestrator()
        orch.register_stage(_BrokenEnvironmentStage())
        result = orch.run()
        report = next(s for s in result.stages if s.stage_id == "s2_environment")
        assert report.error == "clang-14 is not installable"
        assert report.duration_seconds is not None
        blocked = next(s for s in result.stages if s.stage_id == "s3_build_config")
        assert blocked.started_at is None

    def test_failure_in_last_stage_still_fails_run(self, make_orchestrator, fake_runner):
        orch = make_orchestrator("v1.28.0")
        orch.register_stage(_BrokenRetentionStage())
        result = orch.run()

        assert not result.succeeded
        assert result.failed_stage == "s7_artifact_retention"
        assert result.exit_code == 7
        assert result.state_of("s6_publish") == StageState.PASSED
        assert result.retained is None
        assert fake_runner.called("docker", "push")

    def test_register_unknown_stage(self, make_orchestrator):
        with pytest.raises(KeyError):
            make_orchestrator().register_stage(_StrayStage())

    def test_transitions_are_audited(self, make_orchestrator):
        result = make_orchestrator().run()
        # running + passed for each of the seven stages
        assert len(result.transitions) == 14
        assert result.transitions[0].stage_id == "s1_source_fetch"
        assert result.transitions[-1].to_state == StageState.PASSED

    def test_default_runner_follows_toolchain_policy(self, pipeline_config, forge_settings, make_run):
        orch = Orchestrator(make_run(), pipeline_config, settings=forge_settings)
        assert orch.runner.use_sudo is False
        assert orch.run_id == "ef-test-run-001"
