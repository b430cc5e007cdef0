"""Stage 7: Artifact Retention.

Retains the raw binary in the artifact store under
``envoy-static-<revision>`` for the policy's retention window.
"""

from __future__ import annotations

from typing import Any

from envoyforge.core.errors import RetentionError
from envoyforge.core.retention import ArtifactIntegrityError, ArtifactRetentionStore
from envoyforge.models.artifacts import BinaryArtifact
from envoyforge.stages.base import BaseStage


class ArtifactRetentionStage(BaseStage):
    """Stage 7 (Artifact Retention): upload the binary to the store."""

    @property
    def stage_id(self) -> str:
        return "s7_artifact_retention"

    @property
    def display_name(self) -> str:
        return "Artifact Retention"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        run = self.run_of(run_context)
        policy = self.config_of(run_context).retention
        binary: BinaryArtifact = self.result_of(run_context, "s4_binary_build")["binary"]

        try:
            store = run_context.get("retention_store") or ArtifactRetentionStore(
                policy.store_path
            )
            retained = store.retain(
                binary.path,
                name=run.artifact_name,
                retention_days=policy.retention_days,
                metadata={
                    "revision": run.revision,
                    "run_id": run.run_id,
                    "image": run.image_repository,
                },
            )
        except (OSError, ValueError, ArtifactIntegrityError) as exc:
            raise RetentionError(
                f"could not retain {binary.path} as {run.artifact_name}: {exc}"
            ) from exc

        if retained.content_address != binary.content_address:
            raise RetentionError(
                f"retained copy of {run.artifact_name} does not match the built binary"
            )
        return {"retained": retained}
