"""Error taxonomy for slicesync.

Fatal errors abort a whole download or verify run. Per-file errors are
caught by the run and reported in its result alongside successes.
"""

from __future__ import annotations


class SliceSyncError(Exception):
    """Base class for slicesync errors."""


class FatalSyncError(SliceSyncError):
    """A prerequisite shared by every task could not be obtained."""


class OwnershipTokenError(FatalSyncError):
    """No ownership token could be obtained for a product."""

    def __init__(self, product_id: int, message: str | None = None):
        self.product_id = product_id
        super().__init__(message or f"Could not get ownership token for product ID {product_id}")


class SigningError(FatalSyncError):
    """The signing service returned an unusable response."""


class ManifestSourceError(FatalSyncError):
    """The target manifest could not be retrieved or parsed."""


class InstallPathError(FatalSyncError):
    """The install root is missing, not a directory, or not writable."""


class InstallStateError(FatalSyncError):
    """An install artifact exists but cannot be read or parsed."""


class VersionLookupError(FatalSyncError):
    """Version metadata for a product could not be retrieved."""


class FileTaskError(SliceSyncError):
    """A failure confined to a single file's task.

    Attributes:
        file_name: Name of the affected file, when known
    """

    def __init__(self, message: str, *, file_name: str | None = None):
        self.file_name = file_name
        super().__init__(message)


class SliceFetchError(FileTaskError):
    """A slice could not be retrieved."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None,
                 file_name: str | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message, file_name=file_name)


class DecompressionError(FileTaskError):
    """A slice payload could not be decoded to its declared size."""


class OperationCancelled(SliceSyncError):
    """A run was stopped by its cancel signal before all tasks finished."""
