"""Slice integrity verification.

A slice's hash is the SHA-1 of its uncompressed bytes. The same digest
addresses the slice in remote storage and verifies it on disk.
"""

from __future__ import annotations

import structlog

from slicesync.core.errors import SliceSyncError
from slicesync.core.utils import compute_sha1

logger = structlog.get_logger()


class IntegrityError(SliceSyncError):
    """Raised when content verification fails.

    Attributes:
        expected: Expected hash or size as hex string or int
        actual: Actual hash or size as hex string or int
        key_hex: The slice hash being verified (hex string)
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str | int | None = None,
        actual: str | int | None = None,
        key_hex: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        self.key_hex = key_hex
        super().__init__(message)


def verify_slice_digest(data: bytes, expected_hash: bytes, strict: bool = False) -> bool:
    """Check slice bytes against their content hash.

    Args:
        data: Uncompressed slice bytes
        expected_hash: Expected 20-byte SHA-1 digest
        strict: Raise instead of returning False on mismatch

    Returns:
        True if the digest matches, False otherwise

    Raises:
        IntegrityError: On mismatch when strict is set
    """
    actual = compute_sha1(data)
    if actual == expected_hash:
        return True
    if strict:
        raise IntegrityError(
            f"Slice hash mismatch: expected {expected_hash.hex()}, got {actual.hex()}",
            expected=expected_hash.hex(),
            actual=actual.hex(),
            key_hex=expected_hash.hex(),
        )
    return False
