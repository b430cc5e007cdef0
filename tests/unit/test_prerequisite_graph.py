"""Tests for the PrerequisiteGraph: ordering, prerequisite checks, cascade blocking."""

from __future__ import annotations

import pytest

from envoyforge.core.prerequisite_graph import (
    CyclicDependencyError,
    PrerequisiteGraph,
)
from envoyforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    StageDefinition,
    StageState,
)


@pytest.fixture
def graph() -> PrerequisiteGraph:
    return PrerequisiteGraph(DEFAULT_STAGE_DEFINITIONS)


class TestPrerequisiteGraph:
    def test_order_is_linear(self, graph: PrerequisiteGraph):
        assert graph.stage_ids == [
            "s1_source_fetch",
            "s2_environment",
            "s3_build_config",
            "s4_binary_build",
            "s5_image_assembly",
            "s6_publish",
            "s7_artifact_retention",
        ]

    def test_first_stage_has_no_prerequisites(self, graph: PrerequisiteGraph):
        states = {sid: StageState.NOT_STARTED for sid in graph.stage_ids}
        assert graph.are_prerequisites_met("s1_source_fetch", states) is True

    def test_prerequisites_not_met(self, graph: PrerequisiteGraph):
        states = {sid: StageState.NOT_STARTED for sid in graph.stage_ids}
        assert graph.are_prerequisites_met("s2_environment", states) is False
        assert graph.get_blocking_reasons("s2_environment", states) == [
            "Source Fetch (s1_source_fetch) is not_started"
        ]

    def test_prerequisites_met_after_pass(self, graph: PrerequisiteGraph):
        states = {sid: StageState.NOT_STARTED for sid in graph.stage_ids}
        states["s1_source_fetch"] = StageState.PASSED
        assert graph.are_prerequisites_met("s2_environment", states) is True

    def test_failed_prerequisite_never_satisfies(self, graph: PrerequisiteGraph):
        states = {sid: StageState.PASSED for sid in graph.stage_ids}
        states["s5_image_assembly"] = StageState.FAILED
        assert graph.are_prerequisites_met("s6_publish", states) is False

    def test_cascade_block(self, graph: PrerequisiteGraph):
        blocked = graph.cascade_block("s4_binary_build")
        assert blocked == ["s5_image_assembly", "s6_publish", "s7_artifact_retention"]
        assert "s4_binary_build" not in blocked
        assert graph.cascade_block("s7_artifact_retention") == []

    def test_get_prerequisites(self, graph: PrerequisiteGraph):
        assert graph.get_prerequisites("s6_publish") == ["s5_image_assembly"]
        assert graph.get_stage_definition("s6_publish").display_name == "Publish"

    def test_unknown_prerequisite_rejected(self):
        broken = [
            StageDefinition(
                stage_id="s1_source_fetch",
                display_name="Source Fetch",
                ordinal=1,
                prerequisites=["s0_missing"],
            )
        ]
        with pytest.raises(KeyError):
            PrerequisiteGraph(broken)

    def test_cycle_rejected(self):
        looping = [
            StageDefinition(stage_id="a", display_name="A", ordinal=1, prerequisites=["b"]),
            StageDefinition(stage_id="b", display_name="B", ordinal=2, prerequisites=["a"]),
        ]
        with pytest.raises(CyclicDependencyError):
            PrerequisiteGraph(looping)
