"""Download orchestration: fill files slice by slice at exact offsets.

Each file is one task: its slice URLs are signed in a single batch, the
destination is created and sized to the declared file size, then every
slice is fetched, decompressed and written at the running sum of the
declared sizes before it. Slices within a file are strictly sequential;
files run concurrently on a bounded worker pool.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import httpx
import structlog

from slicesync.core.errors import FileTaskError
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.integrity import IntegrityError, verify_slice_digest
from slicesync.core.types import CompressionMethod, ManifestFile
from slicesync.core.worker_pool import ProgressCallback, WorkerPool

logger = structlog.get_logger()

# Failures that only affect the file being filled
FILE_TASK_ERRORS: tuple[type[BaseException], ...] = (
    FileTaskError,
    IntegrityError,
    httpx.HTTPError,
    OSError,
)


@dataclass
class FileDownloadResult:
    """Outcome of downloading one file.

    Attributes:
        name: Manifest file name
        ok: Whether every slice was written
        bytes_written: Uncompressed bytes written
        error: Failure description if the file failed
    """

    name: str
    ok: bool
    bytes_written: int = 0
    error: str | None = None


@dataclass
class DownloadReport:
    """Aggregate outcome of a download run."""

    results: list[FileDownloadResult] = field(
        default_factory=lambda: list[FileDownloadResult]()
    )
    already_installed: bool = False

    @property
    def succeeded(self) -> list[str]:
        return [r.name for r in self.results if r.ok]

    @property
    def failed(self) -> list[FileDownloadResult]:
        return [r for r in self.results if not r.ok]

    @property
    def bytes_written(self) -> int:
        return sum(r.bytes_written for r in self.results)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)


def _open_preallocated(path: Path, size: int) -> BinaryIO:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(path, "wb")
    try:
        handle.truncate(size)
    except OSError:
        handle.close()
        raise
    return handle


def _close_opened(future: asyncio.Future[BinaryIO]) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


async def _open_for_write(path: Path, size: int) -> BinaryIO:
    """Open and size a destination, closing it if the caller is cancelled meanwhile."""
    future = asyncio.ensure_future(asyncio.to_thread(_open_preallocated, path, size))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        # The thread still completes; release whatever it opens
        future.add_done_callback(_close_opened)
        raise


def _write_at(handle: BinaryIO, offset: int, data: bytes) -> None:
    handle.seek(offset)
    handle.write(data)


class Downloader:
    """Concurrent per-file download engine.

    Args:
        fetcher: Slice fetcher for the product being installed
        compression_method: Codec declared by the target manifest
        max_concurrency: Maximum files filled at once
        verify_slices: Check each slice's hash before writing it
        cancel_event: Optional event that aborts the run when set
    """

    def __init__(
        self,
        fetcher: SliceFetcher,
        compression_method: CompressionMethod = CompressionMethod.NONE,
        max_concurrency: int = 8,
        verify_slices: bool = False,
        cancel_event: asyncio.Event | None = None,
    ):
        self.fetcher = fetcher
        self.compression_method = compression_method
        self.max_concurrency = max_concurrency
        self.verify_slices = verify_slices
        self.cancel_event = cancel_event
        self.progress_callback: ProgressCallback | None = None

    async def download_file(self, install_path: Path, file: ManifestFile) -> int:
        """Download one file into place.

        Args:
            install_path: Install root
            file: Manifest entry to fill

        Returns:
            Number of uncompressed bytes written
        """
        urls = await self.fetcher.sign_file(file)

        path = file.local_path(install_path)
        handle = await _open_for_write(path, file.size)
        written = 0
        try:
            for slice_range, url in zip(file.slice_layout(), urls, strict=True):
                data = await self.fetcher.fetch_slice(
                    url, self.compression_method, expected_size=slice_range.size
                )
                if self.verify_slices:
                    verify_slice_digest(data, slice_range.hash, strict=True)
                await asyncio.to_thread(_write_at, handle, slice_range.offset, data)
                written += len(data)
        finally:
            await asyncio.to_thread(handle.close)

        logger.debug("file_downloaded", file=file.name, size=file.size, slices=len(urls))
        return written

    async def download_files(
        self, install_path: Path, files: Iterable[ManifestFile]
    ) -> DownloadReport:
        """Download a set of files concurrently.

        Per-file failures are recorded in the report; fatal errors such as
        a missing ownership token abort the run.

        Args:
            install_path: Install root
            files: Files selected for download

        Returns:
            DownloadReport with one result per file
        """
        pool: WorkerPool[int] = WorkerPool(
            max_concurrency=self.max_concurrency,
            recoverable=FILE_TASK_ERRORS,
            cancel_event=self.cancel_event,
        )
        pool.progress_callback = self.progress_callback

        for file in files:
            pool.submit(file.name, lambda f=file: self.download_file(install_path, f))

        logger.info("download_started", files=pool.pending, concurrency=self.max_concurrency)

        report = DownloadReport()
        async for result in pool.run():
            if result.ok:
                report.results.append(
                    FileDownloadResult(name=result.key, ok=True, bytes_written=result.value or 0)
                )
            else:
                logger.warning("file_download_failed", file=result.key, error=str(result.error))
                report.results.append(
                    FileDownloadResult(name=result.key, ok=False, error=str(result.error))
                )

        logger.info(
            "download_complete",
            files=pool.total,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            bytes_written=report.bytes_written,
        )
        return report
