"""Artifacts handed from stage to stage."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class BinaryArtifact(BaseModel):
    """The compiled proxy binary produced by the build stage."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int
    content_address: str  # "sha256:<hex>"
    version_output: str  # what the binary printed for --version


class ImageDefinition(BaseModel):
    """A generated image recipe and the local tag it was built under."""

    model_config = ConfigDict(frozen=True)

    path: Path
    content: str
    content_address: str
    build_tag: str


class PublishedImage(BaseModel):
    """One logical image pushed to the registry under several tags."""

    model_config = ConfigDict(frozen=True)

    repository: str
    tags: list[str]
    source_tag: str  # local build tag both published tags point at

    @property
    def refs(self) -> list[str]:
        return [f"{self.repository}:{tag}" for tag in self.tags]


class RetainedArtifact(BaseModel):
    """Manifest of a retained build artifact.

    The bytes live in the retention store under ``content_address``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content_address: str
    size_bytes: int
    filename: str
    retention_days: int
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    expires_at: datetime
    metadata: dict[str, str] = {}

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at
