"""Shared utilities for slicesync."""

from __future__ import annotations

import hashlib

SLICE_PREFIX = "slices_v3"
MANIFEST_PREFIX = "manifests"

# RFC 4648 base32 alphabet, lowercased
_PATH_CHARS = "abcdefghijklmnopqrstuvwxyz234567"


def hexlify(data: bytes, upper: bool = False) -> str:
    """Convert bytes to hex string.

    Args:
        data: Binary data to convert
        upper: Use uppercase hex if True, lowercase if False

    Returns:
        Hex string representation of the data

    Example:
        >>> hexlify(b"hello")
        '68656c6c6f'
        >>> hexlify(b"hello", upper=True)
        '68656C6C6F'
    """
    result = data.hex()
    return result.upper() if upper else result


def compute_sha1(data: bytes) -> bytes:
    """Compute SHA-1 digest.

    Args:
        data: Input data to hash

    Returns:
        20-byte SHA-1 digest

    Example:
        >>> compute_sha1(b"hello").hex()
        'aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d'
    """
    return hashlib.sha1(data).digest()


def slice_path_char(hash_hex: str) -> str:
    """Bucket character for a slice hash.

    The top five bits of the first hash byte index into the base32
    alphabet, spreading slices over 32 remote directories.

    Args:
        hash_hex: Slice hash as hex (either case)

    Returns:
        Single bucket character

    Raises:
        ValueError: If hash_hex is not a valid hex string

    Example:
        >>> slice_path_char("00FF")
        'a'
        >>> slice_path_char("FF00")
        '7'
    """
    if not validate_hash_string(hash_hex):
        raise ValueError(f"Invalid slice hash: {hash_hex!r}")
    first_byte = int(hash_hex[:2], 16)
    return _PATH_CHARS[first_byte >> 3]


def slice_storage_path(slice_hash: bytes) -> str:
    """Relative remote path of a slice.

    Example:
        >>> slice_storage_path(bytes.fromhex("0a1b"))
        'slices_v3/b/0A1B'
    """
    hash_hex = hexlify(slice_hash, upper=True)
    return f"{SLICE_PREFIX}/{slice_path_char(hash_hex)}/{hash_hex}"


def manifest_storage_path(manifest_hash: str) -> str:
    """Relative remote path of a manifest blob."""
    return f"{MANIFEST_PREFIX}/{manifest_hash}.manifest"


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string with appropriate unit (e.g., "1.5 MB")

    Example:
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(1536)
        '1.5 KB'
        >>> format_size(1048576)
        '1.0 MB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"


def validate_hash_string(hash_str: str) -> bool:
    """Validate hex hash string.

    Args:
        hash_str: Hash string to validate

    Returns:
        True if valid hex string, False otherwise

    Example:
        >>> validate_hash_string("deadbeef")
        True
        >>> validate_hash_string("invalid")
        False
        >>> validate_hash_string("")
        False
    """
    if not hash_str or hash_str != hash_str.strip() or ' ' in hash_str or '\t' in hash_str:
        return False
    try:
        bytes.fromhex(hash_str)
        return True
    except ValueError:
        return False
