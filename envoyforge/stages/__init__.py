"""envoyforge pipeline stages: registry mapping stage_id to stage class.

Usage::

    from envoyforge.stages import STAGE_REGISTRY, get_stage

    stage = get_stage("s3_build_config")
    result = stage.run_stage(run_context)
"""

from __future__ import annotations

from envoyforge.stages.base import BaseStage
from envoyforge.stages.s1_source_fetch import SourceFetchStage
from envoyforge.stages.s2_environment import EnvironmentPreparationStage
from envoyforge.stages.s3_build_config import BuildConfigurationStage
from envoyforge.stages.s4_binary_build import BinaryBuildStage
from envoyforge.stages.s5_image_assembly import ImageAssemblyStage
from envoyforge.stages.s6_publish import PublishStage
from envoyforge.stages.s7_artifact_retention import ArtifactRetentionStage

STAGE_REGISTRY: dict[str, type[BaseStage]] = {
    "s1_source_fetch": SourceFetchStage,
    "s2_environment": EnvironmentPreparationStage,
    "s3_build_config": BuildConfigurationStage,
    "s4_binary_build": BinaryBuildStage,
    "s5_image_assembly": ImageAssemblyStage,
    "s6_publish": PublishStage,
    "s7_artifact_retention": ArtifactRetentionStage,
}


def get_stage(stage_id: str) -> BaseStage:
    """Instantiate and return a stage by its ``stage_id``.

    Raises ``KeyError`` if the stage_id is not registered.
    """
    try:
        cls = STAGE_REGISTRY[stage_id]
    except KeyError:
        raise KeyError(
            f"Unknown stage_id {stage_id!r}. "
            f"Registered stages: {sorted(STAGE_REGISTRY.keys())}"
        ) from None
    return cls()


__all__ = [
    "BaseStage",
    "STAGE_REGISTRY",
    "get_stage",
    "SourceFetchStage",
    "EnvironmentPreparationStage",
    "BuildConfigurationStage",
    "BinaryBuildStage",
    "ImageAssemblyStage",
    "PublishStage",
    "ArtifactRetentionStage",
]
