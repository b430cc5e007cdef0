"""Stage 3: Build Configuration Emission.

Writes the Bazel rc file rendered from the build policy into the source
tree and creates the cache directories it points at.
"""

from __future__ import annotations

from typing import Any

from envoyforge.core.errors import BuildError
from envoyforge.core.hasher import text_address
from envoyforge.stages.base import BaseStage
from envoyforge.templating.bazelrc import render_bazelrc


class BuildConfigurationStage(BaseStage):
    """Stage 3 (Build Configuration Emission): writes the rc file."""

    @property
    def stage_id(self) -> str:
        return "s3_build_config"

    @property
    def display_name(self) -> str:
        return "Build Configuration Emission"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        config = self.config_of(run_context)
        policy = config.build
        content = render_bazelrc(policy)
        rc_path = config.workspace / policy.rc_filename

        try:
            rc_path.write_text(content, encoding="utf-8")
            policy.disk_cache.mkdir(parents=True, exist_ok=True)
            policy.repository_cache.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BuildError(f"could not write build configuration {rc_path}: {exc}") from exc

        return {
            "rc_path": rc_path,
            "content_address": text_address(content),
            "directive_count": sum(
                1 for line in content.splitlines() if line.startswith("build ")
            ),
        }
