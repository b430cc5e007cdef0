"""Stage 4: Binary Build.

Builds the static proxy binary with Bazel, then gates on it:
    - the artifact must exist at the policy's output path, and
    - invoking it with ``--version`` must exit zero and print something.

Either check failing is fatal; compilation failures carry Bazel's own
output untouched.
"""

from __future__ import annotations

import logging
from typing import Any

from envoyforge.core.errors import BuildError, VerificationError
from envoyforge.core.hasher import sha256_file
from envoyforge.models.artifacts import BinaryArtifact
from envoyforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class BinaryBuildStage(BaseStage):
    """Stage 4 (Binary Build): compile and self-check the binary."""

    @property
    def stage_id(self) -> str:
        return "s4_binary_build"

    @property
    def display_name(self) -> str:
        return "Binary Build"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        config = self.config_of(run_context)
        policy = config.build
        workspace = config.workspace
        bazel = str(config.toolchain.bazel_path)
        env = {"BAZEL_JVM_ARGS": policy.jvm_args}

        if policy.clean_before_build:
            self.command(
                run_context,
                [bazel, "clean", "--expunge"],
                BuildError,
                "bazel clean failed",
                cwd=workspace,
                env=env,
            )
        self.command(
            run_context,
            [bazel, "info"],
            BuildError,
            "bazel info failed",
            cwd=workspace,
            env=env,
        )
        self.command(
            run_context,
            [bazel, "build", *policy.command_line_overrides, policy.target],
            BuildError,
            f"build of {policy.target} failed",
            cwd=workspace,
            env=env,
        )

        binary_path = workspace / policy.output_path
        if not binary_path.is_file():
            raise BuildError(f"build finished but no binary was found at {binary_path}")

        check = self.command(
            run_context,
            [str(binary_path), "--version"],
            VerificationError,
            "built binary failed its self-check",
            capture=True,
        )
        version_output = check.output.strip()
        if not version_output:
            raise VerificationError(
                f"built binary {binary_path} printed nothing for --version"
            )

        binary = BinaryArtifact(
            path=binary_path,
            size_bytes=binary_path.stat().st_size,
            content_address=f"sha256:{sha256_file(binary_path)}",
            version_output=version_output,
        )
        logger.info(
            "built %s (%d bytes): %s",
            binary_path,
            binary.size_bytes,
            version_output.splitlines()[0],
        )
        return {"binary": binary}
