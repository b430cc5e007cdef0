"""Pipeline and run configuration models.

``PipelineRun`` carries the per-invocation parameters; the policy models
carry the fixed constants each stage is parameterized by. Everything here
is frozen: a stage's output is fully determined by these inputs.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from envoyforge.config import ForgeSettings

_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.-]")
_MAX_TAG_LENGTH = 128


def to_image_tag(revision: str) -> str:
    """Map a revision identifier onto a valid container image tag.

    Tags like ``v1.28.0`` and ``main`` pass through unchanged; characters
    a tag cannot hold (``/`` in ``release/v1.28``) become ``-``.
    """
    tag = _TAG_INVALID.sub("-", revision.strip()).lstrip(".-")[:_MAX_TAG_LENGTH]
    if not tag:
        raise ValueError(f"revision {revision!r} cannot be used as an image tag")
    return tag


def _new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"ef-{ts}-{uuid.uuid4().hex[:6]}"


class PipelineRun(BaseModel):
    """Parameters of one pipeline invocation, immutable for its duration."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=_new_run_id)
    revision: str = "main"
    registry: str = "ghcr.io"
    image_name: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("revision")
    @classmethod
    def _check_revision(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch.isspace() for ch in value):
            raise ValueError("revision must be a non-empty identifier without whitespace")
        if value.startswith("-"):
            raise ValueError("revision must not start with '-'")
        to_image_tag(value)
        return value

    @field_validator("image_name")
    @classmethod
    def _check_image_name(cls, value: str) -> str:
        value = value.strip().strip("/").lower()
        if not value:
            raise ValueError("image name must not be empty")
        return value

    @property
    def image_repository(self) -> str:
        return f"{self.registry}/{self.image_name}"

    @property
    def revision_tag(self) -> str:
        return to_image_tag(self.revision)

    @property
    def tags(self) -> tuple[str, str]:
        return ("latest", self.revision_tag)

    @property
    def image_refs(self) -> list[str]:
        return [f"{self.image_repository}:{tag}" for tag in self.tags]

    @property
    def build_tag(self) -> str:
        """Local tag the image is built under before it is published."""
        return f"envoyforge-build:{self.run_id}"

    @property
    def artifact_name(self) -> str:
        return f"envoy-static-{self.revision_tag}"

    @property
    def build_timestamp(self) -> str:
        return self.created_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class BuildPolicy(BaseModel):
    """Bazel build policy: resource caps, feature flags, platform, output."""

    model_config = ConfigDict(frozen=True)

    local_ram_mb: int = Field(6144, gt=0)
    local_cpus: int = Field(2, gt=0)
    jobs: int = Field(2, gt=0)
    compilation_mode: str = "opt"
    stdlib_config: str = "libc++"
    enabled_defines: list[str] = ["wasm=enabled"]
    disabled_features: list[str] = ["hot_restart", "liburing", "tcmalloc", "gperftools"]
    cc: str = "clang"
    cxx: str = "clang++"
    disk_cache: Path = Path("/tmp/bazel-cache")
    repository_cache: Path = Path("/tmp/bazel-repo-cache")
    downloader_retries: int = 3
    timeout_scale: float = 5.0
    copts: list[str] = ["-O2"]
    linkopts: list[str] = ["-Wl,--strip-all"]
    platform: str = "@envoy//bazel:x64_linux"
    target: str = "//source/exe:envoy-static"
    output_path: Path = Path("bazel-bin/source/exe/envoy-static")
    rc_filename: str = ".bazelrc.local"
    jvm_args: str = "-Xmx4g -Xms1g"
    clean_before_build: bool = True

    @property
    def command_line_overrides(self) -> list[str]:
        """Flags passed to ``bazel build`` on top of the rc file."""
        flags = [
            f"--config={self.stdlib_config}",
            f"--compilation_mode={self.compilation_mode}",
        ]
        flags.extend(f"--define={define}" for define in self.enabled_defines)
        flags.extend(f"--define={feature}=disabled" for feature in self.disabled_features)
        flags.extend(["--verbose_failures", "--show_timestamps"])
        return flags


class ToolchainPolicy(BaseModel):
    """Versioned toolchain installed during environment preparation."""

    model_config = ConfigDict(frozen=True)

    build_packages: list[str] = [
        "build-essential",
        "curl",
        "git",
        "python3",
        "python3-pip",
        "python3-dev",
        "libc++-dev",
        "libc++abi-dev",
        "unzip",
        "zip",
        "wget",
        "pkg-config",
        "autoconf",
        "automake",
        "libtool",
        "cmake",
        "ninja-build",
    ]
    compiler_version: str = "14"
    bazelisk_url: str = (
        "https://github.com/bazelbuild/bazelisk/releases/latest/download/bazelisk-linux-amd64"
    )
    bazel_path: Path = Path("/usr/local/bin/bazel")
    alternatives_priority: int = 100
    environment: dict[str, str] = {
        "CC": "clang",
        "CXX": "clang++",
        "BAZEL_CXXOPTS": "-stdlib=libc++",
    }
    nofile_limit: int = 65536
    use_sudo: bool = True

    @property
    def compiler_packages(self) -> list[str]:
        return [f"clang-{self.compiler_version}", f"lld-{self.compiler_version}"]

    @property
    def alternatives(self) -> dict[str, Path]:
        """Compiler name -> versioned binary it should resolve to."""
        return {
            "clang": Path(f"/usr/bin/clang-{self.compiler_version}"),
            "clang++": Path(f"/usr/bin/clang++-{self.compiler_version}"),
        }


class ImagePolicy(BaseModel):
    """Runtime image recipe constants."""

    model_config = ConfigDict(frozen=True)

    base_image: str = "ubuntu:22.04"
    helper_image: str = "envoyproxy/envoy:v1.28.0"
    runtime_packages: list[str] = [
        "ca-certificates",
        "curl",
        "libc++1",
        "libc++abi1",
        "libgcc-s1",
        "libstdc++6",
    ]
    install_path: str = "/usr/local/bin/envoy"
    entrypoint: str = "/docker-entrypoint.sh"
    user: str = "envoy"
    uid: int = 101
    gid: int = 101
    ports: list[int] = [10000, 9901]
    description: str = "Custom Envoy proxy with WASM support"
    build_method: str = "native-bazel"
    command: list[str] = ["envoy", "--version"]
    source_url: str = ""
    recipe_filename: str = "Dockerfile"

    @field_validator("uid", "gid")
    @classmethod
    def _unprivileged_id(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("the image must run as a non-root user and group")
        return value

    @field_validator("user")
    @classmethod
    def _unprivileged_user(cls, value: str) -> str:
        if value in ("root", "0", ""):
            raise ValueError("the image must run as a non-root user")
        return value


class RetentionPolicy(BaseModel):
    """Where and for how long the raw binary is retained."""

    model_config = ConfigDict(frozen=True)

    store_path: Path = Path(".envoyforge/artifacts")
    retention_days: int = Field(30, gt=0)


class PipelineConfig(BaseModel):
    """Project-level configuration for an envoyforge pipeline."""

    model_config = ConfigDict(frozen=True)

    workspace: Path = Path("envoy")
    source_repository: str = "https://github.com/envoyproxy/envoy.git"
    build: BuildPolicy = BuildPolicy()
    toolchain: ToolchainPolicy = ToolchainPolicy()
    image: ImagePolicy = ImagePolicy()
    retention: RetentionPolicy = RetentionPolicy()

    @classmethod
    def from_settings(cls, settings: ForgeSettings) -> PipelineConfig:
        """Build the policy set from environment-driven settings."""
        return cls(
            workspace=settings.workspace,
            source_repository=settings.source_repository,
            build=BuildPolicy(
                local_ram_mb=settings.local_ram_mb,
                local_cpus=settings.local_cpus,
                jobs=settings.jobs,
                disk_cache=settings.disk_cache,
                repository_cache=settings.repository_cache,
                jvm_args=settings.jvm_args,
                clean_before_build=settings.clean_before_build,
            ),
            toolchain=ToolchainPolicy(use_sudo=settings.use_sudo),
            image=ImagePolicy(source_url=settings.image_source_url),
            retention=RetentionPolicy(
                store_path=settings.retention_dir,
                retention_days=settings.retention_days,
            ),
        )
