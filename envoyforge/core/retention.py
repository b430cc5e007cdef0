"""Time-bounded, content-addressed build artifact store.

Storage layout::

    {base}/blobs/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat
    {base}/manifests/{name}.json

Blobs are immutable and shared between names that retain identical bytes.
A manifest names one artifact and records when it expires; ``prune``
drops expired manifests and any blob no manifest references any more.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

from envoyforge.core.hasher import sha256_file
from envoyforge.models.artifacts import RetainedArtifact

logger = logging.getLogger(__name__)


class ArtifactIntegrityError(RuntimeError):
    """Raised when a stored blob's hash does not match its address."""


class ArtifactNotFoundError(KeyError):
    """Raised when no artifact is retained under the requested name."""


class ArtifactRetentionStore:
    """Retains files under a name for a fixed number of days.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._blobs = self._base / "blobs"
        self._manifests = self._base / "manifests"
        self._blobs.mkdir(parents=True, exist_ok=True)
        self._manifests.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    @staticmethod
    def _extract_digest(content_address: str) -> str:
        return content_address.removeprefix("sha256:")

    def _blob_path(self, digest: str) -> Path:
        return self._blobs / digest[:2] / digest[2:4] / f"{digest}.dat"

    def _manifest_path(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"invalid artifact name {name!r}")
        return self._manifests / f"{name}.json"

    # ------------------------------------------------------------------
    # Retain
    # ------------------------------------------------------------------

    def retain(
        self,
        source: Path,
        *,
        name: str,
        retention_days: int,
        metadata: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> RetainedArtifact:
        """Copy ``source`` into the store and retain it as ``name``.

        Retaining under an existing name replaces that name's manifest and
        restarts its retention window.
        """
        source = Path(source)
        if not source.is_file():
            raise FileNotFoundError(f"Cannot retain missing file: {source}")

        digest = sha256_file(source)
        blob = self._blob_path(digest)
        if blob.exists():
            if not self.verify_blob(digest):
                raise ArtifactIntegrityError(
                    f"Existing blob {digest} failed integrity check"
                )
        else:
            blob.parent.mkdir(parents=True, exist_ok=True)
            partial = blob.with_suffix(".partial")
            shutil.copyfile(source, partial)
            partial.replace(blob)

        created_at = now or datetime.now(timezone.utc)
        artifact = RetainedArtifact(
            name=name,
            content_address=f"sha256:{digest}",
            size_bytes=blob.stat().st_size,
            filename=source.name,
            retention_days=retention_days,
            created_at=created_at,
            expires_at=created_at + timedelta(days=retention_days),
            metadata=metadata or {},
        )
        manifest = self._manifest_path(name)
        partial = manifest.with_name(manifest.name + ".partial")
        partial.write_text(artifact.model_dump_json(indent=2), encoding="utf-8")
        partial.replace(manifest)
        logger.info(
            "retained %s (%s, %d bytes) until %s",
            name,
            artifact.content_address[:19],
            artifact.size_bytes,
            artifact.expires_at.isoformat(),
        )
        return artifact

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, name: str) -> RetainedArtifact:
        path = self._manifest_path(name)
        if not path.exists():
            raise ArtifactNotFoundError(name)
        return RetainedArtifact.model_validate_json(path.read_text(encoding="utf-8"))

    def retrieve(self, name: str) -> Path:
        """Return the path of the bytes retained under ``name``."""
        artifact = self.get(name)
        blob = self._blob_path(self._extract_digest(artifact.content_address))
        if not blob.exists():
            raise ArtifactIntegrityError(f"Blob for {name} is missing")
        return blob

    def list_artifacts(self) -> list[RetainedArtifact]:
        return sorted(
            (
                RetainedArtifact.model_validate_json(p.read_text(encoding="utf-8"))
                for p in self._manifests.glob("*.json")
            ),
            key=lambda a: a.created_at,
        )

    def verify_blob(self, content_address: str) -> bool:
        """Re-hash stored data and compare against the content address."""
        digest = self._extract_digest(content_address)
        blob = self._blob_path(digest)
        return blob.exists() and sha256_file(blob) == digest

    def verify(self, name: str) -> bool:
        return self.verify_blob(self.get(name).content_address)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def prune(self, now: datetime | None = None) -> list[str]:
        """Remove expired artifacts; return the names that were dropped."""
        now = now or datetime.now(timezone.utc)
        dropped: list[str] = []
        live_digests: set[str] = set()
        for artifact in self.list_artifacts():
            if artifact.is_expired(now):
                self._manifest_path(artifact.name).unlink()
                dropped.append(artifact.name)
            else:
                live_digests.add(self._extract_digest(artifact.content_address))

        for blob in self._blobs.glob("*/*/*.dat"):
            if blob.stem not in live_digests:
                blob.unlink()

        if dropped:
            logger.info("pruned %d expired artifact(s): %s", len(dropped), ", ".join(dropped))
        return dropped
