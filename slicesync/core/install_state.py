"""Install root resolution and installed-state artifacts.

An install root holds two fixed-name blobs written after a successful
sync: the installed manifest and the install-state record. A missing
blob means "not installed yet"; a blob that exists but cannot be read or
parsed is a fatal configuration error. Blobs are written atomically
(temp file + os.replace).
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import structlog
from pydantic import BaseModel

from slicesync.core.errors import InstallPathError, InstallStateError
from slicesync.core.types import InstallState, Manifest
from slicesync.formats.base import FormatParser
from slicesync.formats.manifest import InstallStateParser, ManifestParser

logger = structlog.get_logger()

MANIFEST_FILENAME = "uplay_install.manifest"
STATE_FILENAME = "uplay_install.state"

LocationPrompt = Callable[[int], str]

M = TypeVar("M", bound=BaseModel)


def _atomic_write(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(data)
    os.replace(tmp_path, path)


class InstallRegistry:
    """Known install locations, persisted as JSON.

    Args:
        registry_file: JSON file mapping product ID to install path
    """

    def __init__(self, registry_file: Path):
        self.registry_file = registry_file

    def _load(self) -> dict[str, str]:
        if not self.registry_file.exists():
            return {}
        try:
            raw = json.loads(self.registry_file.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("install_registry_unreadable", path=str(self.registry_file), error=str(e))
            return {}
        if not isinstance(raw, dict):
            logger.warning("install_registry_invalid_format", type=type(raw).__name__)
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def lookup(self, product_id: int) -> Path | None:
        """Registered install path for a product, if any."""
        location = self._load().get(str(product_id))
        return Path(location) if location else None

    def register(self, product_id: int, install_path: Path) -> None:
        """Record the install path of a product."""
        entries = self._load()
        entries[str(product_id)] = str(install_path)
        self.registry_file.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.registry_file, json.dumps(entries, indent=2).encode("utf-8"))
        logger.debug("install_registered", product_id=product_id, path=str(install_path))


class GameInstall:
    """Accessor for one product's install root.

    Args:
        product_id: Product identifier
        registry: Known install locations
        prompt: Collaborator asked for a location when none is registered
        install_path: Explicit install root, bypassing registry and prompt
        manifest_parser: Parser for the installed manifest blob
        state_parser: Parser for the install-state blob
    """

    def __init__(
        self,
        product_id: int,
        registry: InstallRegistry | None = None,
        prompt: LocationPrompt | None = None,
        install_path: Path | None = None,
        manifest_parser: FormatParser[Manifest] | None = None,
        state_parser: FormatParser[InstallState] | None = None,
    ):
        self.product_id = product_id
        self.registry = registry
        self.prompt = prompt
        self.manifest_parser = manifest_parser or ManifestParser()
        self.state_parser = state_parser or InstallStateParser()
        self._explicit_path = install_path
        self._install_path: Path | None = None

    def get_install_path(self) -> Path:
        """Resolve, create and check the install root.

        Returns:
            Absolute install root

        Raises:
            InstallPathError: If no location is available or the location
                is not a writable directory
        """
        if self._install_path is not None:
            return self._install_path

        location = self._explicit_path
        if location is None and self.registry is not None:
            location = self.registry.lookup(self.product_id)
        if location is None:
            logger.info("Could not locate existing install location", product_id=self.product_id)
            if self.prompt is None:
                raise InstallPathError(f"No install location known for product {self.product_id}")
            location = Path(self.prompt(self.product_id))

        resolved = location.expanduser().resolve()
        if not resolved.exists():
            logger.debug("Creating install directory", path=str(resolved))
            try:
                resolved.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise InstallPathError(f"Cannot create install directory {resolved}: {e}") from e

        if not resolved.is_dir():
            raise InstallPathError(f"Install location is not a directory: {resolved}")
        if not os.access(resolved, os.W_OK):
            raise InstallPathError(f"Install location is not writable: {resolved}")

        self._install_path = resolved
        return resolved

    @property
    def manifest_file(self) -> Path:
        return self.get_install_path() / MANIFEST_FILENAME

    @property
    def state_file(self) -> Path:
        return self.get_install_path() / STATE_FILENAME

    def _read_artifact(self, path: Path, parser: FormatParser[M]) -> M | None:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.debug("install_artifact_absent", path=str(path))
            return None
        except OSError as e:
            raise InstallStateError(f"Cannot read {path}: {e}") from e

        try:
            return parser.parse(data)
        except ValueError as e:
            raise InstallStateError(f"Cannot parse {path}: {e}") from e

    def get_install_state(self) -> InstallState | None:
        """Installed state record, or None when nothing is installed.

        Raises:
            InstallStateError: If the record exists but is unreadable
        """
        return self._read_artifact(self.state_file, self.state_parser)

    def get_manifest(self) -> Manifest | None:
        """Installed manifest, or None when nothing is installed.

        Raises:
            InstallStateError: If the manifest exists but is unreadable
        """
        return self._read_artifact(self.manifest_file, self.manifest_parser)

    def commit(self, manifest_blob: bytes, manifest_hash: str) -> InstallState:
        """Record a completed sync.

        Writes the installed manifest first and the state record last so
        that a state file always refers to a manifest on disk.

        Args:
            manifest_blob: Raw manifest blob now installed
            manifest_hash: Identity of that manifest

        Returns:
            The written install state
        """
        install_path = self.get_install_path()
        state = InstallState(
            product_id=self.product_id,
            install_path=install_path,
            manifest_hash=manifest_hash,
        )
        _atomic_write(self.manifest_file, manifest_blob)
        _atomic_write(self.state_file, self.state_parser.build(state))
        if self.registry is not None:
            self.registry.register(self.product_id, install_path)

        logger.info("install_state_saved", product_id=self.product_id, manifest=manifest_hash)
        return state
