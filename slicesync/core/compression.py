"""Slice payload decompression."""

from __future__ import annotations

import zlib

import structlog
import zstandard

from slicesync.core.errors import DecompressionError
from slicesync.core.types import CompressionMethod

logger = structlog.get_logger()

_zstd_decompressor: zstandard.ZstdDecompressor | None = None


def _get_zstd_decompressor() -> zstandard.ZstdDecompressor:
    """Get cached zstd decompressor."""
    global _zstd_decompressor
    if _zstd_decompressor is None:
        _zstd_decompressor = zstandard.ZstdDecompressor()
    return _zstd_decompressor


def decompress_slice(method: CompressionMethod, data: bytes, expected_size: int | None = None) -> bytes:
    """Decode a slice payload with the manifest's codec.

    Args:
        method: Compression method declared by the manifest
        data: Payload as transferred
        expected_size: Declared uncompressed slice size, checked when given

    Returns:
        Uncompressed slice bytes

    Raises:
        DecompressionError: If the payload cannot be decoded or its decoded
            length differs from expected_size
    """
    try:
        if method == CompressionMethod.NONE:
            result = data
        elif method == CompressionMethod.ZSTD:
            # Frames written without a content size need an output bound
            result = _get_zstd_decompressor().decompress(
                data, max_output_size=expected_size or 0
            )
        elif method == CompressionMethod.DEFLATE:
            result = zlib.decompress(data)
        else:
            raise DecompressionError(f"Unsupported compression method: {method.value}")
    except (zstandard.ZstdError, zlib.error) as e:
        raise DecompressionError(f"{method.value} decompression failed: {e}") from e

    if expected_size is not None and len(result) != expected_size:
        raise DecompressionError(
            f"Decompressed size mismatch: expected {expected_size}, got {len(result)}"
        )
    return result
