"""Shared test fixtures for envoyforge."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from envoyforge.config import ForgeSettings
from envoyforge.core.orchestrator import Orchestrator
from envoyforge.core.retention import ArtifactRetentionStore
from envoyforge.core.runner import CommandFailedError, CommandResult, CommandRunner
from envoyforge.models.config import (
    BuildPolicy,
    PipelineConfig,
    PipelineRun,
    RetentionPolicy,
    ToolchainPolicy,
)

FIXED_TIMESTAMP = datetime(2026, 1, 15, 12, 30, 0, tzinfo=timezone.utc)
FAKE_COMMIT = "0123456789abcdef0123456789abcdef01234567"
FAKE_VERSION = "envoy  version: 0123456/1.28.0/Clean/RELEASE/BoringSSL"

Hook = Callable[[list[str], "Path | None"], None]


def _matches(command: Sequence[str], prefix: Sequence[str]) -> bool:
    """Match on the executable's basename plus the leading arguments."""
    if not command or len(command) < len(prefix):
        return False
    return Path(command[0]).name == prefix[0] and list(command[1 : len(prefix)]) == list(
        prefix[1:]
    )


class FakeRunner(CommandRunner):
    """A CommandRunner that records commands instead of running them.

    Commands succeed with empty output unless scripted with
    ``respond``/``fail_on``; ``on`` registers a side effect (for example
    creating the binary when ``bazel build`` runs).
    """

    def __init__(self) -> None:
        super().__init__(use_sudo=False)
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.cwds: list[Path | None] = []
        self.envs: list[dict[str, str]] = []
        self._responses: list[tuple[tuple[str, ...], str]] = []
        self._failures: list[tuple[tuple[str, ...], int, str]] = []
        self._hooks: list[tuple[tuple[str, ...], Hook]] = []

    def respond(self, *prefix: str, stdout: str) -> None:
        self._responses.append((prefix, stdout))

    def fail_on(self, *prefix: str, returncode: int = 1, output: str = "boom") -> None:
        self._failures.append((prefix, returncode, output))

    def on(self, *prefix: str, hook: Hook) -> None:
        self._hooks.append((prefix, hook))

    def clear_hooks(self) -> None:
        self._hooks.clear()

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
        input_text: str | None = None,
        check: bool = True,
        privileged: bool = False,
    ) -> CommandResult:
        command = list(argv)
        if privileged and self.use_sudo:
            command = ["sudo", *command]
        self.calls.append(command)
        self.inputs.append(input_text)
        self.cwds.append(cwd)
        self.envs.append({**self.exported, **(env or {})})

        returncode, stdout, stderr = 0, "", ""
        for prefix, out in self._responses:
            if _matches(command, prefix):
                stdout = out
        for prefix, code, out in self._failures:
            if _matches(command, prefix):
                returncode, stderr = code, out
        if returncode == 0:
            for prefix, hook in self._hooks:
                if _matches(command, prefix):
                    hook(command, cwd)

        result = CommandResult(
            argv=tuple(command), returncode=returncode, stdout=stdout, stderr=stderr
        )
        if check and not result.ok:
            raise CommandFailedError(result)
        return result

    def called(self, *prefix: str) -> bool:
        return any(_matches(call, prefix) for call in self.calls)

    def calls_to(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if _matches(call, prefix)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    """Provide a PipelineConfig rooted entirely in a temp directory."""
    return PipelineConfig(
        workspace=tmp_path / "envoy",
        build=BuildPolicy(
            disk_cache=tmp_path / "bazel-cache",
            repository_cache=tmp_path / "bazel-repo-cache",
        ),
        toolchain=ToolchainPolicy(
            use_sudo=False,
            nofile_limit=0,
            bazel_path=tmp_path / "bin" / "bazel",
        ),
        retention=RetentionPolicy(store_path=tmp_path / "retained"),
    )


@pytest.fixture
def forge_settings() -> ForgeSettings:
    """Settings with registry credentials and no .env file."""
    return ForgeSettings(
        _env_file=None,
        registry="ghcr.io",
        image_name="acme/envoy",
        registry_username="ci-bot",
        registry_token="s3cret-token",
    )


@pytest.fixture
def fake_runner(pipeline_config: PipelineConfig) -> FakeRunner:
    """A runner scripted so that a full pipeline run succeeds."""
    runner = FakeRunner()
    runner.respond("git", "rev-parse", stdout=f"{FAKE_COMMIT}\n")
    runner.respond("bazel", "version", stdout="Bazelisk version: v1.19.0\nBuild label: 7.1.0\n")
    runner.respond("clang", "--version", stdout="Ubuntu clang version 14.0.0\n")
    runner.respond("clang++", "--version", stdout="Ubuntu clang version 14.0.0\n")
    runner.respond("envoy-static", "--version", stdout=f"\n{FAKE_VERSION}\n")
    runner.respond("docker", "run", stdout=f"{FAKE_VERSION}\n")

    def _produce_binary(command: list[str], cwd: Path | None) -> None:
        binary = pipeline_config.workspace / pipeline_config.build.output_path
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"\x7fELF fake envoy binary")
        binary.chmod(0o755)

    runner.on("bazel", "build", hook=_produce_binary)
    return runner


@pytest.fixture
def make_run() -> Callable[..., PipelineRun]:
    """Factory fixture: build a PipelineRun with a fixed timestamp."""

    def _factory(revision: str = "main", **overrides: Any) -> PipelineRun:
        defaults: dict[str, Any] = {
            "run_id": "ef-test-run-001",
            "revision": revision,
            "registry": "ghcr.io",
            "image_name": "acme/envoy",
            "created_at": FIXED_TIMESTAMP,
        }
        defaults.update(overrides)
        return PipelineRun(**defaults)

    return _factory


@pytest.fixture
def retention_store(pipeline_config: PipelineConfig) -> ArtifactRetentionStore:
    return ArtifactRetentionStore(pipeline_config.retention.store_path)


@pytest.fixture
def make_orchestrator(
    pipeline_config: PipelineConfig,
    forge_settings: ForgeSettings,
    fake_runner: FakeRunner,
    retention_store: ArtifactRetentionStore,
    make_run: Callable[..., PipelineRun],
) -> Callable[..., Orchestrator]:
    """Factory fixture: an Orchestrator wired to the fake runner."""

    def _factory(revision: str = "main", **overrides: Any) -> Orchestrator:
        kwargs: dict[str, Any] = {
            "settings": forge_settings,
            "runner": fake_runner,
            "retention_store": retention_store,
        }
        kwargs.update(overrides)
        return Orchestrator(make_run(revision), pipeline_config, **kwargs)

    return _factory


@pytest.fixture
def run_context(
    pipeline_config: PipelineConfig,
    forge_settings: ForgeSettings,
    fake_runner: FakeRunner,
    retention_store: ArtifactRetentionStore,
    make_run: Callable[..., PipelineRun],
) -> dict[str, Any]:
    """A run context for exercising single stages directly."""
    pipeline_config.workspace.mkdir(parents=True, exist_ok=True)
    return {
        "run": make_run("v1.28.0"),
        "config": pipeline_config,
        "settings": forge_settings,
        "runner": fake_runner,
        "retention_store": retention_store,
        "stage_results": {},
    }
