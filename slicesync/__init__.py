"""slicesync - incremental installer for content-addressed slice stores.

An installation is described by a manifest that splits every file into
ordered, content-addressed slices. slicesync diffs manifests to find the
files that changed, downloads and reassembles them at exact byte
offsets, and verifies installed files slice by slice.

Key modules:
- core: Manifest model, diffing, fetching, download and verify engines
- formats: Manifest and install-state codecs
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "slicesync Team"

from slicesync.core.types import (
    Chunk,
    CompressionMethod,
    InstallState,
    Manifest,
    ManifestFile,
    Slice,
)

__all__ = [
    "__version__",
    "__author__",
    "Chunk",
    "CompressionMethod",
    "InstallState",
    "Manifest",
    "ManifestFile",
    "Slice",
]
