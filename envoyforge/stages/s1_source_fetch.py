"""Stage 1: Source Fetch.

Retrieves exactly the requested revision of the Envoy source tree into
the workspace with a shallow fetch. Branches, tags and commit ids all
resolve through ``git fetch <url> <revision>``; a revision the remote
does not know aborts the run before any build work.
"""

from __future__ import annotations

import logging
from typing import Any

from envoyforge.core.errors import InputError, ToolchainError
from envoyforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class SourceFetchStage(BaseStage):
    """Stage 1 (Source Fetch): checks out the requested revision."""

    @property
    def stage_id(self) -> str:
        return "s1_source_fetch"

    @property
    def display_name(self) -> str:
        return "Source Fetch"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        run = self.run_of(run_context)
        config = self.config_of(run_context)
        workspace = config.workspace
        workspace.mkdir(parents=True, exist_ok=True)

        if not (workspace / ".git").exists():
            self.command(
                run_context,
                ["git", "init", "--quiet", str(workspace)],
                ToolchainError,
                "could not initialise the source workspace",
            )

        self.command(
            run_context,
            [
                "git",
                "fetch",
                "--depth",
                "1",
                "--end-of-options",
                config.source_repository,
                run.revision,
            ],
            InputError,
            f"revision {run.revision!r} does not resolve in {config.source_repository}",
            cwd=workspace,
            capture=True,
        )
        self.command(
            run_context,
            ["git", "checkout", "--force", "--quiet", "FETCH_HEAD"],
            InputError,
            f"could not check out revision {run.revision!r}",
            cwd=workspace,
        )
        head = self.command(
            run_context,
            ["git", "rev-parse", "HEAD"],
            InputError,
            "could not resolve the checked-out commit",
            cwd=workspace,
            capture=True,
        )
        commit = head.stdout.strip()
        logger.info("checked out %s at %s", run.revision, commit[:12])

        return {
            "revision": run.revision,
            "commit": commit,
            "source_dir": workspace,
        }
