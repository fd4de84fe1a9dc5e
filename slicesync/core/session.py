"""Sync session: install state → diff → download → commit.

Verification is independent of the diff: it only needs the install root
and the installed manifest.
"""

from __future__ import annotations

import asyncio

import structlog

from slicesync.core.config import AppConfig
from slicesync.core.diff import ManifestDiff, diff_manifests
from slicesync.core.downloader import DownloadReport, Downloader
from slicesync.core.errors import InstallStateError, ManifestSourceError
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.install_state import GameInstall
from slicesync.core.types import Manifest
from slicesync.core.verifier import Verifier, VerifyResult
from slicesync.core.worker_pool import ProgressCallback
from slicesync.formats.base import FormatParser
from slicesync.formats.manifest import ManifestParser

logger = structlog.get_logger()


class SyncSession:
    """One product's download or verify session.

    Args:
        install: Install root accessor
        fetcher: Slice fetcher for the product; not needed to verify
        manifest_hash: Target manifest identity
        config: Application configuration
        manifest_parser: Parser for manifest blobs
        cancel_event: Optional event that aborts running pools
    """

    def __init__(
        self,
        install: GameInstall,
        fetcher: SliceFetcher | None = None,
        manifest_hash: str | None = None,
        config: AppConfig | None = None,
        manifest_parser: FormatParser[Manifest] | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.install = install
        self.fetcher = fetcher
        self.manifest_hash = manifest_hash
        self.config = config or AppConfig()
        self.manifest_parser = manifest_parser or ManifestParser()
        self.cancel_event = cancel_event

    async def load_target(self) -> tuple[bytes, Manifest]:
        """Fetch and parse the target manifest.

        Raises:
            ManifestSourceError: If no target is set or it cannot be parsed
        """
        if not self.manifest_hash:
            raise ManifestSourceError("No target manifest selected")
        if self.fetcher is None:
            raise ManifestSourceError("No slice fetcher configured")
        blob = await self.fetcher.fetch_manifest_blob(self.manifest_hash)
        try:
            manifest = self.manifest_parser.parse(blob)
        except ValueError as e:
            raise ManifestSourceError(f"Could not parse manifest {self.manifest_hash}: {e}") from e
        return blob, manifest

    async def plan(self) -> ManifestDiff:
        """Files the target manifest requires, without downloading."""
        state = self.install.get_install_state()
        _, target = await self.load_target()
        previous = self.install.get_manifest() if state is not None else None
        return diff_manifests(target, previous)

    async def download(
        self, progress: ProgressCallback | None = None, verify_slices: bool = False
    ) -> DownloadReport:
        """Bring the install root up to the target manifest.

        The new manifest and state are committed only when every selected
        file was written.

        Args:
            progress: Optional (completed, total) callback per finished file
            verify_slices: Check each slice hash before writing it

        Returns:
            DownloadReport; ``already_installed`` is set when nothing was done
        """
        install_path = self.install.get_install_path()
        state = self.install.get_install_state()
        if state is not None and state.manifest_hash == self.manifest_hash:
            logger.info("This version is already installed. Cancelling download.",
                        manifest=self.manifest_hash)
            return DownloadReport(already_installed=True)

        blob, target = await self.load_target()

        previous: Manifest | None = None
        if state is None:
            logger.debug("No existing install detected. Doing a fresh install...")
        else:
            logger.debug("Detecting which files need updating...")
            previous = self.install.get_manifest()

        delta = diff_manifests(target, previous)

        assert self.fetcher is not None
        downloader = Downloader(
            self.fetcher,
            compression_method=target.compression_method,
            max_concurrency=self.config.download.max_concurrency,
            verify_slices=verify_slices,
            cancel_event=self.cancel_event,
        )
        downloader.progress_callback = progress
        report = await downloader.download_files(install_path, delta.selected)

        if report.ok:
            assert self.manifest_hash is not None
            self.install.commit(blob, self.manifest_hash)
        else:
            logger.warning(
                "Install state not updated; some files failed",
                failed=len(report.failed),
            )
        return report

    async def verify(self, progress: ProgressCallback | None = None) -> VerifyResult:
        """Verify the install root against its installed manifest.

        Raises:
            InstallStateError: If no installed manifest exists
        """
        install_path = self.install.get_install_path()
        manifest = self.install.get_manifest()
        if manifest is None:
            raise InstallStateError(f"No installed manifest found in {install_path}")

        verifier = Verifier(
            max_concurrency=self.config.verify.max_concurrency,
            cancel_event=self.cancel_event,
        )
        verifier.progress_callback = progress
        return await verifier.verify(install_path, manifest)
