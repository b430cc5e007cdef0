"""Stage 5: Image Assembly.

Stages the built binary and the generated recipe into a dedicated image
build context and builds the image under the run's local build tag.
The context holds only what the recipe copies, so the (large) source
tree is never sent to the image builder.
"""

from __future__ import annotations

import shutil
from pathlib import PurePosixPath
from typing import Any

from envoyforge.core.errors import BuildError
from envoyforge.core.hasher import text_address
from envoyforge.models.artifacts import BinaryArtifact, ImageDefinition
from envoyforge.stages.base import BaseStage
from envoyforge.templating.dockerfile import build_args, render_dockerfile

CONTEXT_DIRNAME = "image-context"


class ImageAssemblyStage(BaseStage):
    """Stage 5 (Image Assembly): write the recipe and build the image."""

    @property
    def stage_id(self) -> str:
        return "s5_image_assembly"

    @property
    def display_name(self) -> str:
        return "Image Assembly"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        run = self.run_of(run_context)
        config = self.config_of(run_context)
        binary: BinaryArtifact = self.result_of(run_context, "s4_binary_build")["binary"]

        context_dir = config.workspace / CONTEXT_DIRNAME
        staged_name = binary.path.name
        content = render_dockerfile(config.image, run, PurePosixPath(staged_name))
        recipe_path = context_dir / config.image.recipe_filename

        try:
            context_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(binary.path, context_dir / staged_name)
            recipe_path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise BuildError(f"could not prepare the image build context: {exc}") from exc

        self.command(
            run_context,
            [
                "docker",
                "build",
                *(
                    f"--build-arg={key}={value}"
                    for key, value in build_args(run).items()
                ),
                "--file",
                str(recipe_path),
                "--tag",
                run.build_tag,
                str(context_dir),
            ],
            BuildError,
            "image build failed",
        )

        image = ImageDefinition(
            path=recipe_path,
            content=content,
            content_address=text_address(content),
            build_tag=run.build_tag,
        )
        return {"image": image, "context_dir": context_dir}
