"""Pytest configuration and shared fixtures for slicesync tests."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest
import zstandard

from slicesync.core.config import AppConfig
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.signing import MirrorSigningService
from slicesync.core.types import Chunk, ChunkType, CompressionMethod, Manifest, ManifestFile, Slice
from slicesync.core.utils import slice_storage_path

PRODUCT_ID = 4932
BASE_URL = "https://slices.test"


def sha1(data: bytes) -> bytes:
    return hashlib.sha1(data).digest()


@pytest.fixture
def product_id() -> int:
    return PRODUCT_ID


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def make_file() -> Callable[..., ManifestFile]:
    """Factory building a ManifestFile from its slice payloads."""

    def _make(name: str, *parts: bytes) -> ManifestFile:
        return ManifestFile(
            name=name,
            size=sum(len(p) for p in parts),
            slices=[Slice(size=len(p), hash=sha1(p)) for p in parts],
        )

    return _make


@pytest.fixture
def make_manifest() -> Callable[..., Manifest]:
    """Factory building a single- or multi-chunk manifest."""

    def _make(
        *chunks: list[ManifestFile],
        compression: CompressionMethod = CompressionMethod.NONE,
    ) -> Manifest:
        return Manifest(
            compression_method=compression,
            chunks=[
                Chunk(id=index + 1, type=ChunkType.REQUIRED, files=files)
                for index, files in enumerate(chunks)
            ],
        )

    return _make


@pytest.fixture
def slice_store() -> dict[str, bytes]:
    """Remote objects keyed by relative storage path."""
    return {}


@pytest.fixture
def store_slices(slice_store: dict[str, bytes]) -> Callable[..., None]:
    """Publish slice payloads to the fake store, optionally compressed."""

    def _store(*parts: bytes, compression: CompressionMethod = CompressionMethod.NONE) -> None:
        for part in parts:
            payload = part
            if compression == CompressionMethod.ZSTD:
                payload = zstandard.ZstdCompressor().compress(part)
            slice_store[slice_storage_path(sha1(part))] = payload

    return _store


@pytest.fixture
def request_log() -> list[str]:
    """Relative paths requested from the fake store, in order."""
    return []


@pytest.fixture
def store_transport(slice_store: dict[str, bytes], request_log: list[str]) -> httpx.MockTransport:
    """HTTP transport serving the fake store behind MirrorSigningService URLs."""
    prefix = f"/{PRODUCT_ID}/"

    def handler(request: httpx.Request) -> httpx.Response:
        path = unquote(request.url.path)
        if not path.startswith(prefix) or not request.url.params.get("token"):
            return httpx.Response(403)
        key = path[len(prefix):]
        request_log.append(key)
        if key not in slice_store:
            return httpx.Response(404)
        return httpx.Response(200, content=slice_store[key])

    return httpx.MockTransport(handler)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration rooted in a temporary directory."""
    return AppConfig(
        config_dir=tmp_path / "config",
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config file pointing every directory at tmp_path."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "config_dir": str(tmp_path / "config"),
        "cache_dir": str(tmp_path / "cache"),
        "signing": {"base_url": BASE_URL},
    }))
    return path


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture
def make_fetcher(store_transport: httpx.MockTransport) -> Callable[..., SliceFetcher]:
    """Factory for a SliceFetcher wired to the fake store.

    Call it inside the running event loop so the client belongs to it.
    """

    def _make(**kwargs: object) -> SliceFetcher:
        signing = kwargs.pop("signing", None) or MirrorSigningService(BASE_URL)
        return SliceFetcher(
            PRODUCT_ID,
            signing,  # type: ignore[arg-type]
            client=httpx.AsyncClient(transport=store_transport),
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo log level and handler changes made by CLI invocations."""
    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)
    yield
    root.setLevel(level)
    root.handlers[:] = handlers
