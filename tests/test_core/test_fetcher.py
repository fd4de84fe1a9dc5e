"""Tests for slicesync.core.fetcher module."""

import asyncio
import hashlib
from pathlib import Path

import httpx
import pytest

from slicesync.core.cache import ManifestCache
from slicesync.core.errors import (
    DecompressionError,
    ManifestSourceError,
    OwnershipTokenError,
    SigningError,
    SliceFetchError,
)
from slicesync.core.fetcher import SliceFetcher
from slicesync.core.signing import MirrorSigningService, OwnershipToken
from slicesync.core.types import CompressionMethod
from slicesync.core.utils import manifest_storage_path, slice_storage_path


class ShortSigner:
    """Signing service that drops the last URL."""

    async def get_ownership_token(self, product_id: int) -> OwnershipToken:
        return OwnershipToken("tok", expires_at=1e12)

    async def sign_urls(self, token: str, product_id: int, paths: list[str]) -> list[str]:
        return [f"https://slices.test/{product_id}/{p}?token={token}" for p in paths[:-1]]


class NoTokenSigner:
    """Signing service for a product the account does not own."""

    def __init__(self) -> None:
        self.sign_calls = 0

    async def get_ownership_token(self, product_id: int) -> None:
        return None

    async def sign_urls(self, token: str, product_id: int, paths: list[str]) -> list[str]:
        self.sign_calls += 1
        return []


class TestSignUrls:
    """Test URL signing through the fetcher."""

    def test_one_url_per_path_in_order(self, make_fetcher, make_file):
        async def _run() -> None:
            f = make_file("a.dat", b"one", b"two", b"three")
            async with make_fetcher() as fetcher:
                urls = await fetcher.sign_file(f)

            assert len(urls) == 3
            for url, s in zip(urls, f.slices, strict=True):
                assert slice_storage_path(s.hash) in url

        asyncio.run(_run())

    def test_token_is_reused_across_files(self, make_fetcher, make_file):
        async def _run() -> None:
            async with make_fetcher() as fetcher:
                await fetcher.sign_file(make_file("a.dat", b"a"))
                await fetcher.sign_file(make_file("b.dat", b"b"))
                assert fetcher.token_cache.refresh_count == 1

        asyncio.run(_run())

    def test_empty_path_list(self, make_fetcher):
        async def _run() -> None:
            async with make_fetcher() as fetcher:
                assert await fetcher.sign_urls([]) == []

        asyncio.run(_run())

    def test_count_mismatch_raises(self, make_fetcher):
        async def _run() -> None:
            async with make_fetcher(signing=ShortSigner()) as fetcher:
                with pytest.raises(SigningError):
                    await fetcher.sign_urls(["a", "b"])

        asyncio.run(_run())

    def test_missing_token_raises_before_signing(self, make_fetcher):
        async def _run() -> None:
            signer = NoTokenSigner()
            async with make_fetcher(signing=signer) as fetcher:
                with pytest.raises(OwnershipTokenError):
                    await fetcher.sign_urls(["a"])
            assert signer.sign_calls == 0

        asyncio.run(_run())


class TestFetchSlice:
    """Test slice retrieval and decompression."""

    def test_fetch_plain_slice(self, make_fetcher, store_slices):
        async def _run() -> None:
            store_slices(b"plain slice")
            async with make_fetcher() as fetcher:
                digest = hashlib.sha1(b"plain slice").digest()
                [url] = await fetcher.sign_urls([slice_storage_path(digest)])
                data = await fetcher.fetch_slice(url, CompressionMethod.NONE, expected_size=11)
            assert data == b"plain slice"

        asyncio.run(_run())

    def test_fetch_zstd_slice(self, make_fetcher, store_slices):
        async def _run() -> None:
            payload = b"compressed " * 64
            store_slices(payload, compression=CompressionMethod.ZSTD)
            async with make_fetcher() as fetcher:
                [url] = await fetcher.sign_urls([slice_storage_path(hashlib.sha1(payload).digest())])
                data = await fetcher.fetch_slice(url, CompressionMethod.ZSTD, expected_size=len(payload))
            assert data == payload

        asyncio.run(_run())

    def test_missing_slice(self, make_fetcher):
        async def _run() -> None:
            async with make_fetcher() as fetcher:
                [url] = await fetcher.sign_urls(["slices_v3/a/0000"])
                with pytest.raises(SliceFetchError) as exc_info:
                    await fetcher.fetch_slice(url)
            assert exc_info.value.status_code == 404

        asyncio.run(_run())

    def test_wrong_codec(self, make_fetcher, store_slices):
        async def _run() -> None:
            store_slices(b"not compressed at all")
            async with make_fetcher() as fetcher:
                digest = hashlib.sha1(b"not compressed at all").digest()
                [url] = await fetcher.sign_urls([slice_storage_path(digest)])
                with pytest.raises(DecompressionError):
                    await fetcher.fetch_slice(url, CompressionMethod.ZSTD, expected_size=21)

        asyncio.run(_run())


class TestFetchManifestBlob:
    """Test manifest blob retrieval."""

    def test_downloads_and_caches(self, make_fetcher, slice_store, request_log, tmp_path: Path):
        async def _run() -> None:
            slice_store[manifest_storage_path("ABCDEF")] = b"manifest blob"
            cache = ManifestCache(tmp_path / "cache")
            async with make_fetcher(cache=cache) as fetcher:
                assert await fetcher.fetch_manifest_blob("ABCDEF") == b"manifest blob"
                assert await fetcher.fetch_manifest_blob("ABCDEF") == b"manifest blob"

            assert request_log == [manifest_storage_path("ABCDEF")]
            assert cache.get("ABCDEF") == b"manifest blob"

        asyncio.run(_run())

    def test_missing_manifest_is_fatal(self, make_fetcher):
        async def _run() -> None:
            async with make_fetcher() as fetcher:
                with pytest.raises(ManifestSourceError):
                    await fetcher.fetch_manifest_blob("ABCDEF")

        asyncio.run(_run())


class TestRejectedToken:
    """Test token handling when the store rejects a signed URL."""

    def test_forbidden_response_forces_new_token(self, make_file):
        async def _run() -> None:
            client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(403)))
            async with SliceFetcher(4932, MirrorSigningService("https://slices.test"), client=client) as fetcher:
                [url] = await fetcher.sign_file(make_file("a.dat", b"a"))
                with pytest.raises(SliceFetchError) as exc_info:
                    await fetcher.fetch_slice(url)
                assert exc_info.value.status_code == 403
                assert not fetcher.token_cache.is_fresh()

                await fetcher.sign_file(make_file("b.dat", b"b"))
                assert fetcher.token_cache.refresh_count == 2

        asyncio.run(_run())

    def test_missing_slice_keeps_token(self, make_fetcher, make_file):
        async def _run() -> None:
            async with make_fetcher() as fetcher:
                [url] = await fetcher.sign_file(make_file("a.dat", b"absent"))
                with pytest.raises(SliceFetchError):
                    await fetcher.fetch_slice(url)
                assert fetcher.token_cache.is_fresh()

        asyncio.run(_run())
