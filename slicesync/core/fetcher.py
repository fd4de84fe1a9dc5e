"""Slice fetcher: URL signing and slice retrieval.

Signing is batched per file (one request for all of a file's slice
paths), while retrieval happens one slice at a time so it can be driven
concurrently across files.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import httpx
import structlog

from slicesync.core.cache import ManifestCache
from slicesync.core.compression import decompress_slice
from slicesync.core.config import DownloadConfig
from slicesync.core.errors import ManifestSourceError, SigningError, SliceFetchError
from slicesync.core.signing import OwnershipToken, SigningService, TokenCache
from slicesync.core.types import CompressionMethod, ManifestFile
from slicesync.core.utils import manifest_storage_path, slice_storage_path

logger = structlog.get_logger()


class SliceFetcher:
    """Fetches signed slice content for one product.

    Args:
        product_id: Product whose content is fetched
        signing: Authorization and URL-signing collaborator
        config: Optional download configuration
        token_expiry_buffer: Seconds before expiry at which the token is refreshed
        cache: Optional manifest blob cache
        client: Optional preconfigured async HTTP client
        clock: Time source for token freshness checks
    """

    def __init__(
        self,
        product_id: int,
        signing: SigningService,
        config: DownloadConfig | None = None,
        token_expiry_buffer: float = 5.0,
        cache: ManifestCache | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.product_id = product_id
        self.signing = signing
        self.config = config or DownloadConfig()
        self.cache = cache
        self._client = client
        self.token_cache = TokenCache(
            product_id,
            self._request_token,
            expiry_buffer=token_expiry_buffer,
            clock=clock,
        )

    @property
    def async_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.request_timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> SliceFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request_token(self) -> OwnershipToken | None:
        return await self.signing.get_ownership_token(self.product_id)

    async def sign_urls(self, paths: list[str]) -> list[str]:
        """Exchange relative content paths for signed URLs.

        Args:
            paths: Relative storage paths, all for this product

        Returns:
            One signed URL per path, in the same order

        Raises:
            OwnershipTokenError: If no ownership token can be obtained
            SigningError: If the service returns the wrong number of URLs
        """
        if not paths:
            return []

        token = await self.token_cache.get()
        urls = await self.signing.sign_urls(token, self.product_id, paths)
        if len(urls) != len(paths):
            raise SigningError(
                f"Signing service returned {len(urls)} URLs for {len(paths)} paths"
            )
        return urls

    async def sign_file(self, file: ManifestFile) -> list[str]:
        """Signed URLs for every slice of a file, in slice order."""
        return await self.sign_urls([slice_storage_path(s.hash) for s in file.slices])

    async def fetch_bytes(self, url: str) -> bytes:
        """GET a signed URL.

        Raises:
            SliceFetchError: On a non-success status or transport failure. A
                401 or 403 also drops the cached ownership token.
        """
        try:
            response = await self.async_client.get(url)
        except httpx.HTTPError as e:
            raise SliceFetchError(f"Request failed: {e}", url=url) from e

        if response.status_code != 200:
            if response.status_code in (401, 403):
                # Signed URL rejected; files signed after this use a new token
                self.token_cache.invalidate()
            raise SliceFetchError(
                f"HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response.content

    async def fetch_slice(
        self,
        url: str,
        method: CompressionMethod = CompressionMethod.NONE,
        expected_size: int | None = None,
    ) -> bytes:
        """Fetch one slice and decompress it.

        Args:
            url: Signed slice URL
            method: Manifest compression method
            expected_size: Declared uncompressed slice size

        Returns:
            Uncompressed slice bytes

        Raises:
            SliceFetchError: If the slice cannot be retrieved
            DecompressionError: If the payload cannot be decoded
        """
        data = await self.fetch_bytes(url)
        return decompress_slice(method, data, expected_size)

    async def fetch_manifest_blob(self, manifest_hash: str) -> bytes:
        """Download a manifest blob, consulting the cache first.

        Raises:
            ManifestSourceError: If the manifest cannot be retrieved
        """
        if self.cache is not None:
            cached = self.cache.get(manifest_hash)
            if cached is not None:
                return cached

        [url] = await self.sign_urls([manifest_storage_path(manifest_hash)])
        try:
            data = await self.fetch_bytes(url)
        except SliceFetchError as e:
            raise ManifestSourceError(f"Could not download manifest {manifest_hash}: {e}") from e

        logger.info("manifest_downloaded", manifest=manifest_hash, size=len(data))
        if self.cache is not None:
            self.cache.put(manifest_hash, data)
        return data
