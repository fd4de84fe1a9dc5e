"""Client for the community manifest version catalog.

The catalog maps each product to the manifests it has shipped, with
release dates and community version labels, one JSON document per
product at ``{base_url}/{product_id:05d}.json``.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from slicesync.core.errors import VersionLookupError
from slicesync.core.types import ManifestVersion

logger = structlog.get_logger()


class VersionCatalog:
    """Version metadata lookup.

    Args:
        base_url: Catalog base URL
        timeout: Request timeout in seconds
        client: Optional preconfigured HTTP client
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> VersionCatalog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def url_for(self, product_id: int) -> str:
        return f"{self.base_url}/{product_id:05d}.json"

    def list_versions(self, product_id: int) -> list[ManifestVersion]:
        """Known manifests for a product, in catalog order.

        Raises:
            VersionLookupError: If the catalog cannot be fetched or parsed
        """
        url = self.url_for(product_id)
        try:
            response = self.client.get(url)
        except httpx.HTTPError as e:
            raise VersionLookupError(f"Could not get versions for product ID {product_id}: {e}") from e

        if response.status_code != 200:
            raise VersionLookupError(
                f"Could not get versions for product ID {product_id}: HTTP {response.status_code}"
            )

        try:
            raw = response.json()
            if not isinstance(raw, list):
                raise VersionLookupError(f"Unexpected version catalog format for product ID {product_id}")
            versions = [ManifestVersion.model_validate(item) for item in raw]
        except (ValueError, ValidationError) as e:
            raise VersionLookupError(f"Invalid version catalog for product ID {product_id}: {e}") from e

        logger.debug("versions_fetched", product_id=product_id, count=len(versions))
        return versions

    def find(self, product_id: int, manifest_hash: str) -> ManifestVersion | None:
        """Catalog entry for a specific manifest, if listed."""
        wanted = manifest_hash.lower()
        for version in self.list_versions(product_id):
            if version.manifest.lower() == wanted:
                return version
        return None
