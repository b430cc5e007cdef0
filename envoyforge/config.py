"""Environment-driven settings.

Centralized configuration using pydantic-settings. Reads from a ``.env``
file and ``ENVOYFORGE_*`` environment variables. The variables a CI job
already provides (``REGISTRY``, ``IMAGE_NAME``, ``GITHUB_REPOSITORY``,
``GITHUB_ACTOR``, ``GITHUB_TOKEN``) are accepted as fallbacks.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeSettings(BaseSettings):
    """Pipeline settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export ENVOYFORGE_LOG_LEVEL=DEBUG
        export ENVOYFORGE_LOCAL_CPUS=16
        export IMAGE_NAME=acme/envoy
        export GITHUB_ACTOR=ci-bot GITHUB_TOKEN=...

    Or via .env file::

        ENVOYFORGE_WORKSPACE=/src/envoy
        ENVOYFORGE_USE_SUDO=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ENVOYFORGE_",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    log_level: str = "INFO"

    # Source
    workspace: Path = Path("envoy")
    source_repository: str = "https://github.com/envoyproxy/envoy.git"

    # Registry coordinates and credentials
    registry: str = Field(
        "ghcr.io",
        validation_alias=AliasChoices("ENVOYFORGE_REGISTRY", "REGISTRY"),
    )
    image_name: str = Field(
        "",
        validation_alias=AliasChoices(
            "ENVOYFORGE_IMAGE_NAME", "IMAGE_NAME", "GITHUB_REPOSITORY"
        ),
    )
    image_source: str = ""
    registry_username: str = Field(
        "",
        validation_alias=AliasChoices("ENVOYFORGE_REGISTRY_USERNAME", "GITHUB_ACTOR"),
    )
    registry_token: SecretStr | None = Field(
        None,
        validation_alias=AliasChoices("ENVOYFORGE_REGISTRY_TOKEN", "GITHUB_TOKEN"),
    )

    # Build resource caps, tuned for a 2-core hosted runner by default
    local_ram_mb: int = 6144
    local_cpus: int = 2
    jobs: int = 2
    jvm_args: str = "-Xmx4g -Xms1g"
    disk_cache: Path = Path("/tmp/bazel-cache")
    repository_cache: Path = Path("/tmp/bazel-repo-cache")
    clean_before_build: bool = True

    # Host
    use_sudo: bool = True
    command_timeout_seconds: float | None = None

    # Artifact retention
    retention_dir: Path = Path(".envoyforge/artifacts")
    retention_days: int = 30

    @property
    def image_source_url(self) -> str:
        """Repository the image is labelled as built from."""
        if self.image_source:
            return self.image_source
        if self.image_name:
            return f"https://github.com/{self.image_name}"
        return ""

    @property
    def has_registry_credentials(self) -> bool:
        return bool(
            self.registry_username
            and self.registry_token
            and self.registry_token.get_secret_value()
        )
