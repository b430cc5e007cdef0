"""Stage 2: Environment Preparation.

Idempotently installs the versioned toolchain and selects it:
    - Build packages from the distribution archive.
    - Bazelisk, installed as ``bazel`` (skipped when already present).
    - A raised open-file limit for the build's many parallel actions.
    - clang/lld at the pinned version, registered as the active compiler
      through ``update-alternatives``.
    - ``CC``, ``CXX`` and ``BAZEL_CXXOPTS`` exported for every later
      command of the run.

The environment is changed for the remainder of the run; any failure is
fatal.
"""

from __future__ import annotations

import logging
import resource
import tempfile
from pathlib import Path
from typing import Any

from envoyforge.core.errors import ToolchainError
from envoyforge.models.config import ToolchainPolicy
from envoyforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class EnvironmentPreparationStage(BaseStage):
    """Stage 2 (Environment Preparation): toolchain install and selection."""

    @property
    def stage_id(self) -> str:
        return "s2_environment"

    @property
    def display_name(self) -> str:
        return "Environment Preparation"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        policy = self.config_of(run_context).toolchain
        runner = self.runner_of(run_context)

        self.command(
            run_context,
            ["apt-get", "update"],
            ToolchainError,
            "package index update failed",
            privileged=True,
        )
        self._apt_install(run_context, policy.build_packages)

        bazelisk_installed = self._install_bazelisk(run_context, policy)
        nofile = raise_open_file_limit(policy.nofile_limit)

        self._apt_install(run_context, policy.compiler_packages)
        for name, target in policy.alternatives.items():
            self.command(
                run_context,
                [
                    "update-alternatives",
                    "--install",
                    f"/usr/bin/{name}",
                    name,
                    str(target),
                    str(policy.alternatives_priority),
                ],
                ToolchainError,
                f"could not select {target} as {name}",
                privileged=True,
            )

        for key, value in policy.environment.items():
            runner.export(key, value)

        bazel_version = self.command(
            run_context,
            [str(policy.bazel_path), "version"],
            ToolchainError,
            "bazel is not usable",
            capture=True,
        ).stdout.strip()
        versions: dict[str, str] = {}
        for variable, default in (("CC", "clang"), ("CXX", "clang++")):
            compiler = policy.environment.get(variable, default)
            versions[variable] = self.command(
                run_context,
                [compiler, "--version"],
                ToolchainError,
                f"the selected {variable} compiler {compiler} is not usable",
                capture=True,
            ).stdout.strip()
        first_lines = {key: (text.splitlines() or [""])[0] for key, text in versions.items()}

        return {
            "packages": [*policy.build_packages, *policy.compiler_packages],
            "bazelisk_installed": bazelisk_installed,
            "open_file_limit": nofile,
            "environment": dict(policy.environment),
            "bazel_version": bazel_version,
            "compiler_version": first_lines["CC"],
            "cxx_compiler_version": first_lines["CXX"],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apt_install(self, run_context: dict[str, Any], packages: list[str]) -> None:
        self.command(
            run_context,
            ["apt-get", "install", "-y", *packages],
            ToolchainError,
            f"could not install {', '.join(packages)}",
            privileged=True,
        )

    def _install_bazelisk(self, run_context: dict[str, Any], policy: ToolchainPolicy) -> bool:
        """Download Bazelisk to ``bazel_path``; returns False if already there."""
        if policy.bazel_path.exists():
            logger.info("bazel launcher already present at %s", policy.bazel_path)
            return False

        download = Path(tempfile.gettempdir()) / "bazelisk"
        self.command(
            run_context,
            ["curl", "-fsSL", "-o", str(download), policy.bazelisk_url],
            ToolchainError,
            "could not download bazelisk",
        )
        self.command(
            run_context,
            ["install", "-m", "0755", str(download), str(policy.bazel_path)],
            ToolchainError,
            f"could not install bazelisk to {policy.bazel_path}",
            privileged=True,
        )
        return True


def raise_open_file_limit(limit: int) -> int:
    """Raise the soft RLIMIT_NOFILE towards ``limit``, bounded by the hard limit.

    Child processes inherit the raised limit. Returns the resulting soft
    limit; a ``limit`` of 0 leaves it untouched.
    """
    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if limit <= 0 or soft == resource.RLIM_INFINITY:
        return soft
    target = limit if hard == resource.RLIM_INFINITY else min(limit, hard)
    if soft >= target:
        return soft
    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (target, hard))
    except (ValueError, OSError) as exc:
        raise ToolchainError(f"could not raise the open-file limit to {target}: {exc}") from exc
    logger.info("open-file limit raised from %d to %d", soft, target)
    return target
