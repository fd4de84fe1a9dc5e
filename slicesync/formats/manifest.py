"""JSON codec for manifest and install-state blobs.

The binary manifest encoding belongs to the content provider; anything
implementing ``FormatParser[Manifest]`` can be plugged in instead. This
codec stores the same model as UTF-8 JSON, with slice hashes as
uppercase hex.
"""

from __future__ import annotations

from typing import BinaryIO

import structlog
from pydantic import ValidationError

from slicesync.core.types import InstallState, Manifest
from slicesync.formats.base import FormatParser

logger = structlog.get_logger()


def _read_all(data: bytes | BinaryIO) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    return data.read()


class ManifestParser(FormatParser[Manifest]):
    """Parser for JSON manifest blobs."""

    def parse(self, data: bytes | BinaryIO) -> Manifest:
        """Parse a manifest blob.

        Raises:
            ValueError: If the blob is not a valid manifest
        """
        raw = _read_all(data)
        try:
            manifest = Manifest.model_validate_json(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid manifest: {e}") from e

        logger.debug(
            "manifest_parsed",
            chunks=len(manifest.chunks),
            files=manifest.file_count,
            compression=manifest.compression_method.value,
        )
        return manifest

    def build(self, obj: Manifest) -> bytes:
        return obj.model_dump_json().encode("utf-8")


class InstallStateParser(FormatParser[InstallState]):
    """Parser for JSON install-state blobs."""

    def parse(self, data: bytes | BinaryIO) -> InstallState:
        """Parse an install-state blob.

        Raises:
            ValueError: If the blob is not a valid install state
        """
        raw = _read_all(data)
        try:
            return InstallState.model_validate_json(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid install state: {e}") from e

    def build(self, obj: InstallState) -> bytes:
        return obj.model_dump_json().encode("utf-8")
