"""Core functionality for slicesync.

This module provides the synchronization engine:
- Manifest model and diffing
- Slice fetching and URL signing
- Download and verification engines
- Install state access
- Configuration and utilities
"""

from slicesync.core.diff import ManifestDiff, diff_manifests
from slicesync.core.types import (
    Chunk,
    ChunkType,
    CompressionMethod,
    InstallState,
    Manifest,
    ManifestFile,
    Slice,
    SliceRange,
)
from slicesync.core.utils import (
    compute_sha1,
    format_size,
    hexlify,
    slice_path_char,
    slice_storage_path,
    validate_hash_string,
)

__all__ = [
    # Types
    "Chunk",
    "ChunkType",
    "CompressionMethod",
    "InstallState",
    "Manifest",
    "ManifestFile",
    "Slice",
    "SliceRange",
    # Diff
    "ManifestDiff",
    "diff_manifests",
    # Utils
    "compute_sha1",
    "format_size",
    "hexlify",
    "slice_path_char",
    "slice_storage_path",
    "validate_hash_string",
]
