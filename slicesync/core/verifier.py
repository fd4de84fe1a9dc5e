"""Installed file verification against a manifest.

Every file is re-read slice by slice at the same offsets the downloader
writes to, and each slice's SHA-1 is compared with the manifest. The
first mismatching or short slice marks the file bad and stops reading
it. Every manifest file ends up in exactly one of ``good_files`` and
``bad_files``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import structlog

from slicesync.core.integrity import verify_slice_digest
from slicesync.core.types import Manifest, ManifestFile
from slicesync.core.worker_pool import ProgressCallback, WorkerPool

logger = structlog.get_logger()


@dataclass
class VerifyResult:
    """Partition of a manifest's files into good and bad.

    Attributes:
        good_files: Files whose slices all match
        bad_files: Files with a mismatching, short or unreadable slice
        errors: Reason for each bad file, keyed by name
    """

    good_files: list[str] = field(default_factory=lambda: list[str]())
    bad_files: list[str] = field(default_factory=lambda: list[str]())
    errors: dict[str, str] = field(default_factory=lambda: dict[str, str]())

    @property
    def total(self) -> int:
        return len(self.good_files) + len(self.bad_files)

    @property
    def is_clean(self) -> bool:
        return not self.bad_files


@dataclass
class FileCheck:
    """Outcome of checking one file."""

    name: str
    good: bool
    reason: str | None = None
    slices_checked: int = 0


def _read_slice(handle: BinaryIO, offset: int, size: int) -> bytes:
    handle.seek(offset)
    return handle.read(size)


def check_file(install_path: Path, file: ManifestFile) -> FileCheck:
    """Verify one installed file, stopping at the first bad slice.

    Args:
        install_path: Install root
        file: Manifest entry describing the file

    Returns:
        FileCheck; I/O errors classify the file as bad rather than raise
    """
    path = file.local_path(install_path)
    checked = 0
    try:
        with open(path, "rb") as handle:
            for slice_range in file.slice_layout():
                data = _read_slice(handle, slice_range.offset, slice_range.size)
                checked += 1
                if len(data) != slice_range.size:
                    return FileCheck(
                        file.name, False,
                        f"short read for bytes {slice_range.offset}-{slice_range.end}: "
                        f"got {len(data)} of {slice_range.size}",
                        checked,
                    )
                if not verify_slice_digest(data, slice_range.hash):
                    return FileCheck(
                        file.name, False,
                        f"slice {slice_range.index} hash mismatch at offset {slice_range.offset}",
                        checked,
                    )
    except OSError as e:
        return FileCheck(file.name, False, str(e), checked)

    return FileCheck(file.name, True, None, checked)


class Verifier:
    """Concurrent per-file verification engine.

    Args:
        max_concurrency: Maximum files checked at once
        cancel_event: Optional event that aborts the run when set
    """

    def __init__(self, max_concurrency: int = 8, cancel_event: asyncio.Event | None = None):
        self.max_concurrency = max_concurrency
        self.cancel_event = cancel_event
        self.progress_callback: ProgressCallback | None = None

    async def verify(self, install_path: Path, manifest: Manifest) -> VerifyResult:
        """Verify every file of a manifest under an install root.

        Args:
            install_path: Install root
            manifest: Manifest believed to describe the installed content

        Returns:
            VerifyResult listing files in manifest order
        """
        pool: WorkerPool[FileCheck] = WorkerPool(
            max_concurrency=self.max_concurrency,
            recoverable=(OSError,),
            cancel_event=self.cancel_event,
        )
        pool.progress_callback = self.progress_callback

        order: dict[str, int] = {}
        for _, file in manifest.iter_files():
            order.setdefault(file.name, len(order))
            pool.submit(file.name, lambda f=file: asyncio.to_thread(check_file, install_path, f))

        logger.info("verify_started", files=pool.pending, path=str(install_path))

        result = VerifyResult()
        async for pool_result in pool.run():
            check = pool_result.value
            if check is None:
                check = FileCheck(pool_result.key, False, str(pool_result.error))

            if check.good:
                result.good_files.append(check.name)
            else:
                logger.info("Bad file", file=check.name, reason=check.reason)
                result.bad_files.append(check.name)
                result.errors[check.name] = check.reason or "unknown"

        result.good_files.sort(key=order.__getitem__)
        result.bad_files.sort(key=order.__getitem__)

        logger.info(
            "verify_complete",
            files=pool.total,
            good=len(result.good_files),
            bad=len(result.bad_files),
        )
        return result
