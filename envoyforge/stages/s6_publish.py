"""Stage 6: Publish.

Authenticates to the registry, tags the freshly built image as
``latest`` and as the revision, smoke-tests it, and pushes both tags.
Each step is fatal and gates everything after it: without a successful
login nothing is tagged, and nothing is pushed unless the smoke run
exits zero.
"""

from __future__ import annotations

import logging
from typing import Any

from envoyforge.core.errors import PublishError, VerificationError
from envoyforge.models.artifacts import ImageDefinition, PublishedImage
from envoyforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class PublishStage(BaseStage):
    """Stage 6 (Publish): login, tag, smoke-test, push."""

    @property
    def stage_id(self) -> str:
        return "s6_publish"

    @property
    def display_name(self) -> str:
        return "Publish"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        run = self.run_of(run_context)
        settings = run_context["settings"]
        image: ImageDefinition = self.result_of(run_context, "s5_image_assembly")["image"]

        if not settings.has_registry_credentials:
            raise PublishError(
                f"no credentials for {run.registry}: set GITHUB_ACTOR and GITHUB_TOKEN "
                "(or ENVOYFORGE_REGISTRY_USERNAME and ENVOYFORGE_REGISTRY_TOKEN)"
            )

        # The token goes through stdin so it never appears in argv or logs.
        self.command(
            run_context,
            [
                "docker",
                "login",
                run.registry,
                "--username",
                settings.registry_username,
                "--password-stdin",
            ],
            PublishError,
            f"authentication to {run.registry} failed",
            input_text=settings.registry_token.get_secret_value(),
            capture=True,
        )

        refs = run.image_refs
        for ref in refs:
            self.command(
                run_context,
                ["docker", "tag", image.build_tag, ref],
                PublishError,
                f"could not tag {image.build_tag} as {ref}",
            )

        smoke = self.command(
            run_context,
            ["docker", "run", "--rm", refs[0]],
            VerificationError,
            f"image {refs[0]} failed its smoke test",
            capture=True,
        )
        logger.info("smoke test output: %s", smoke.output.strip())

        for ref in refs:
            self.command(
                run_context,
                ["docker", "push", ref],
                PublishError,
                f"push of {ref} failed",
            )

        published = PublishedImage(
            repository=run.image_repository,
            tags=list(run.tags),
            source_tag=image.build_tag,
        )
        for ref in published.refs:
            logger.info("published %s", ref)
        return {"published": published}
