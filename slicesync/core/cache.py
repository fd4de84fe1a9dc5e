"""Disk cache for downloaded manifest blobs."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from slicesync.core.utils import validate_hash_string

logger = structlog.get_logger()


class ManifestCache:
    """Content-addressed cache of manifest blobs.

    Cache layout:
    ~/.cache/slicesync/
    └── manifests/
        └── {hash[:2]}/{hash}.manifest
    """

    def __init__(self, base_dir: Path | None = None):
        """Initialize manifest cache.

        Args:
            base_dir: Base cache directory, defaults to ~/.cache/slicesync
        """
        self.base_dir = base_dir or (Path.home() / ".cache" / "slicesync")
        self.manifest_dir = self.base_dir / "manifests"
        self.manifest_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, manifest_hash: str) -> Path:
        if not validate_hash_string(manifest_hash):
            raise ValueError(f"Invalid manifest hash: {manifest_hash!r}")
        key = manifest_hash.lower()
        return self.manifest_dir / key[:2] / f"{key}.manifest"

    def get(self, manifest_hash: str) -> bytes | None:
        """Return the cached blob, or None on a miss."""
        path = self._path(manifest_hash)
        if not path.exists():
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning("manifest_cache_read_failed", path=str(path), error=str(e))
            return None
        logger.debug("manifest_cache_hit", manifest=manifest_hash, size=len(data))
        return data

    def put(self, manifest_hash: str, data: bytes) -> Path:
        """Store a blob atomically and return its path."""
        path = self._path(manifest_hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        logger.debug("manifest_cached", manifest=manifest_hash, size=len(data))
        return path

    def clear(self) -> int:
        """Remove every cached blob, returning how many were deleted."""
        removed = 0
        for path in self.manifest_dir.rglob("*.manifest"):
            path.unlink()
            removed += 1
        return removed
