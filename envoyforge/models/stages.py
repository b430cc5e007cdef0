"""Stage state machine models: deterministic, forward-only transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """Strict state model for each pipeline stage."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"


# A run is never resumed, so PASSED, FAILED and BLOCKED are all terminal.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {StageState.RUNNING, StageState.BLOCKED},
    StageState.RUNNING: {StageState.PASSED, StageState.FAILED},
    StageState.PASSED: set(),
    StageState.FAILED: set(),
    StageState.BLOCKED: set(),
}


class StageDefinition(BaseModel):
    """Defines a pipeline stage and its prerequisites.

    A stage cannot enter RUNNING unless every prerequisite is PASSED.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    ordinal: int
    prerequisites: list[str] = []


class StageTransition(BaseModel):
    """Records a single state transition for the run's audit trail."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    from_state: StageState
    to_state: StageState
    reason: str | None = None  # populated for FAILED and BLOCKED
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# The seven envoyforge stages, strictly linear.
DEFAULT_STAGE_DEFINITIONS: list[StageDefinition] = [
    StageDefinition(
        stage_id="s1_source_fetch",
        display_name="Source Fetch",
        ordinal=1,
        prerequisites=[],
    ),
    StageDefinition(
        stage_id="s2_environment",
        display_name="Environment Preparation",
        ordinal=2,
        prerequisites=["s1_source_fetch"],
    ),
    StageDefinition(
        stage_id="s3_build_config",
        display_name="Build Configuration Emission",
        ordinal=3,
        prerequisites=["s2_environment"],
    ),
    StageDefinition(
        stage_id="s4_binary_build",
        display_name="Binary Build",
        ordinal=4,
        prerequisites=["s3_build_config"],
    ),
    StageDefinition(
        stage_id="s5_image_assembly",
        display_name="Image Assembly",
        ordinal=5,
        prerequisites=["s4_binary_build"],
    ),
    StageDefinition(
        stage_id="s6_publish",
        display_name="Publish",
        ordinal=6,
        prerequisites=["s5_image_assembly"],
    ),
    StageDefinition(
        stage_id="s7_artifact_retention",
        display_name="Artifact Retention",
        ordinal=7,
        prerequisites=["s6_publish"],
    ),
]
