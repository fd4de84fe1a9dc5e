"""Tests for slicesync.core.session module."""

import asyncio
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest

from slicesync.core.downloader import DownloadReport
from slicesync.core.errors import InstallStateError, ManifestSourceError, OperationCancelled
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.install_state import MANIFEST_FILENAME, STATE_FILENAME, GameInstall
from slicesync.core.session import SyncSession
from slicesync.core.signing import MirrorSigningService
from slicesync.core.types import Manifest
from slicesync.core.utils import manifest_storage_path
from slicesync.formats.manifest import ManifestParser


@pytest.fixture
def publish_manifest(slice_store):
    """Publish a manifest blob to the fake store under a hash."""

    def _publish(manifest_hash: str, manifest: Manifest) -> bytes:
        blob = ManifestParser().build(manifest)
        slice_store[manifest_storage_path(manifest_hash)] = blob
        return blob

    return _publish


@pytest.fixture
def run_download(make_fetcher, app_config, tmp_path: Path):
    """Run a download session against the fake store."""

    def _run(manifest_hash: str, **kwargs) -> DownloadReport:
        async def _inner() -> DownloadReport:
            async with make_fetcher() as fetcher:
                session = SyncSession(
                    GameInstall(4932, install_path=tmp_path / "game"),
                    fetcher,
                    manifest_hash=manifest_hash,
                    config=app_config,
                )
                return await session.download(**kwargs)

        return asyncio.run(_inner())

    return _run


class TestSyncSessionDownload:
    """Test SyncSession.download."""

    def test_fresh_install(self, make_file, make_manifest, store_slices, publish_manifest,
                           run_download, tmp_path: Path):
        store_slices(b"alpha", b"beta", b"gamma")
        manifest = make_manifest([make_file("a.dat", b"alpha", b"beta"), make_file("b/c.dat", b"gamma")])
        blob = publish_manifest("AAAA", manifest)

        report = run_download("AAAA")

        root = tmp_path / "game"
        assert report.ok
        assert sorted(report.succeeded) == ["a.dat", "b/c.dat"]
        assert (root / "a.dat").read_bytes() == b"alphabeta"
        assert (root / "b" / "c.dat").read_bytes() == b"gamma"

        install = GameInstall(4932, install_path=root)
        state = install.get_install_state()
        assert state is not None
        assert state.manifest_hash == "AAAA"
        assert install.manifest_file.read_bytes() == blob

    def test_already_installed(self, make_file, make_manifest, store_slices, publish_manifest,
                               run_download, request_log):
        store_slices(b"alpha")
        publish_manifest("AAAA", make_manifest([make_file("a.dat", b"alpha")]))
        run_download("AAAA")
        request_log.clear()

        report = run_download("AAAA")

        assert report.already_installed
        assert report.results == []
        assert request_log == []

    def test_update_downloads_only_changed_files(self, make_file, make_manifest, store_slices,
                                                 publish_manifest, run_download, request_log,
                                                 tmp_path: Path):
        store_slices(b"same", b"old", b"new", b"added")
        publish_manifest("V1", make_manifest([make_file("same.dat", b"same"), make_file("upd.dat", b"old")]))
        publish_manifest("V2", make_manifest([
            make_file("same.dat", b"same"),
            make_file("upd.dat", b"new"),
            make_file("extra.dat", b"added"),
        ]))
        run_download("V1")
        request_log.clear()

        report = run_download("V2")

        assert sorted(report.succeeded) == ["extra.dat", "upd.dat"]
        assert (tmp_path / "game" / "upd.dat").read_bytes() == b"new"
        fetched_slices = [p for p in request_log if not p.startswith("manifests/")]
        assert len(fetched_slices) == 2
        state = GameInstall(4932, install_path=tmp_path / "game").get_install_state()
        assert state is not None and state.manifest_hash == "V2"

    def test_failure_leaves_state_untouched(self, make_file, make_manifest, store_slices,
                                            publish_manifest, run_download, tmp_path: Path):
        store_slices(b"present")
        publish_manifest("AAAA", make_manifest([
            make_file("ok.dat", b"present"),
            make_file("broken.dat", b"absent"),
        ]))

        report = run_download("AAAA")

        assert not report.ok
        assert report.succeeded == ["ok.dat"]
        install = GameInstall(4932, install_path=tmp_path / "game")
        assert install.get_install_state() is None
        assert install.get_manifest() is None

    def test_unknown_manifest(self, run_download):
        with pytest.raises(ManifestSourceError):
            run_download("FFFF")

    def test_unparseable_manifest(self, slice_store, run_download):
        slice_store[manifest_storage_path("BAD")] = b"not a manifest"
        with pytest.raises(ManifestSourceError):
            run_download("BAD")


class TestSyncSessionVerify:
    """Test SyncSession.verify."""

    def test_verify_after_download(self, make_file, make_manifest, store_slices, publish_manifest,
                                   run_download, make_fetcher, app_config, tmp_path: Path):
        store_slices(b"one", b"two")
        publish_manifest("AAAA", make_manifest([make_file("1.dat", b"one"), make_file("2.dat", b"two")]))
        run_download("AAAA")
        (tmp_path / "game" / "2.dat").write_bytes(b"owt")

        async def _verify():
            async with make_fetcher() as fetcher:
                session = SyncSession(GameInstall(4932, install_path=tmp_path / "game"), fetcher,
                                      config=app_config)
                return await session.verify()

        result = asyncio.run(_verify())
        assert result.good_files == ["1.dat"]
        assert result.bad_files == ["2.dat"]

    def test_verify_without_manifest(self, app_config, tmp_path: Path):
        session = SyncSession(GameInstall(4932, install_path=tmp_path), config=app_config)
        with pytest.raises(InstallStateError):
            asyncio.run(session.verify())

    def test_verify_needs_no_fetcher(self, make_file, make_manifest, app_config, tmp_path: Path):
        (tmp_path / "a.dat").write_bytes(b"alpha")
        install = GameInstall(4932, install_path=tmp_path)
        install.commit(ManifestParser().build(make_manifest([make_file("a.dat", b"alpha")])), "AAAA")

        result = asyncio.run(SyncSession(install, config=app_config).verify())

        assert result.good_files == ["a.dat"]
        assert result.is_clean

    def test_download_without_fetcher(self, app_config, tmp_path: Path):
        session = SyncSession(GameInstall(4932, install_path=tmp_path), manifest_hash="AAAA", config=app_config)
        with pytest.raises(ManifestSourceError, match="fetcher"):
            asyncio.run(session.download())


class TestSyncSessionPlan:
    """Test SyncSession.plan."""

    def test_plan_fresh(self, make_file, make_manifest, publish_manifest, make_fetcher, app_config,
                        tmp_path: Path):
        publish_manifest("AAAA", make_manifest([make_file("a.dat", b"aaa"), make_file("b.dat", b"b")]))

        async def _plan():
            async with make_fetcher() as fetcher:
                session = SyncSession(GameInstall(4932, install_path=tmp_path), fetcher,
                                      manifest_hash="AAAA", config=app_config)
                return await session.plan()

        delta = asyncio.run(_plan())
        assert [f.name for f in delta.selected] == ["a.dat", "b.dat"]
        assert delta.download_size == 4

    def test_plan_without_target(self, make_fetcher, app_config, tmp_path: Path):
        async def _plan():
            async with make_fetcher() as fetcher:
                session = SyncSession(GameInstall(4932, install_path=tmp_path), fetcher, config=app_config)
                return await session.plan()

        with pytest.raises(ManifestSourceError):
            asyncio.run(_plan())


class TestSyncSessionCancellation:
    """Test cancelling a download session."""

    def test_cancel_keeps_previous_state(self, make_file, make_manifest, store_slices, publish_manifest,
                                         slice_store, run_download, app_config, tmp_path: Path):
        store_slices(b"v1", b"v2-content")
        publish_manifest("AAAA", make_manifest([make_file("a.dat", b"v1")]))
        publish_manifest("BBBB", make_manifest([make_file("a.dat", b"v2-content")]))
        run_download("AAAA")
        root = tmp_path / "game"

        async def _cancelled_update() -> None:
            cancel_event = asyncio.Event()

            async def handler(request: httpx.Request) -> httpx.Response:
                key = unquote(request.url.path).removeprefix("/4932/")
                if key.startswith("slices_v3/"):
                    cancel_event.set()
                    await asyncio.sleep(30)
                return httpx.Response(200, content=slice_store[key])

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with SliceFetcher(4932, MirrorSigningService("https://slices.test"), client=client) as fetcher:
                session = SyncSession(
                    GameInstall(4932, install_path=root),
                    fetcher,
                    manifest_hash="BBBB",
                    config=app_config,
                    cancel_event=cancel_event,
                )
                await asyncio.wait_for(session.download(), timeout=5)

        with pytest.raises(OperationCancelled):
            asyncio.run(_cancelled_update())

        install = GameInstall(4932, install_path=root)
        state = install.get_install_state()
        assert state is not None
        assert state.manifest_hash == "AAAA"
        assert (root / STATE_FILENAME).exists()

    def test_cancel_fresh_install_writes_no_state(self, make_file, make_manifest, publish_manifest,
                                                  slice_store, app_config, tmp_path: Path):
        publish_manifest("AAAA", make_manifest([make_file("a.dat", b"data")]))
        root = tmp_path / "game"

        async def _cancelled_install() -> None:
            cancel_event = asyncio.Event()

            async def handler(request: httpx.Request) -> httpx.Response:
                key = unquote(request.url.path).removeprefix("/4932/")
                if key.startswith("slices_v3/"):
                    cancel_event.set()
                    await asyncio.sleep(30)
                return httpx.Response(200, content=slice_store.get(key, b""))

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with SliceFetcher(4932, MirrorSigningService("https://slices.test"), client=client) as fetcher:
                session = SyncSession(
                    GameInstall(4932, install_path=root),
                    fetcher,
                    manifest_hash="AAAA",
                    config=app_config,
                    cancel_event=cancel_event,
                )
                await asyncio.wait_for(session.download(), timeout=5)

        with pytest.raises(OperationCancelled):
            asyncio.run(_cancelled_install())

        assert not (root / STATE_FILENAME).exists()
        assert not (root / MANIFEST_FILENAME).exists()
