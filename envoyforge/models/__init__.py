"""envoyforge data models: all Pydantic v2, all frozen (immutable)."""

from envoyforge.models.artifacts import (
    BinaryArtifact,
    ImageDefinition,
    PublishedImage,
    RetainedArtifact,
)
from envoyforge.models.config import (
    BuildPolicy,
    ImagePolicy,
    PipelineConfig,
    PipelineRun,
    RetentionPolicy,
    ToolchainPolicy,
    to_image_tag,
)
from envoyforge.models.reports import PipelineResult, StageReport
from envoyforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    VALID_TRANSITIONS,
    StageDefinition,
    StageState,
    StageTransition,
)

__all__ = [
    # stages
    "StageState",
    "StageDefinition",
    "StageTransition",
    "VALID_TRANSITIONS",
    "DEFAULT_STAGE_DEFINITIONS",
    # config
    "PipelineRun",
    "PipelineConfig",
    "BuildPolicy",
    "ToolchainPolicy",
    "ImagePolicy",
    "RetentionPolicy",
    "to_image_tag",
    # artifacts
    "BinaryArtifact",
    "ImageDefinition",
    "PublishedImage",
    "RetainedArtifact",
    # reports
    "StageReport",
    "PipelineResult",
]
