"""Ownership tokens and URL signing.

The signing service is an external collaborator: it issues a short-lived
ownership token per product and exchanges that token for signed,
time-limited URLs to content paths. ``TokenCache`` keeps the current
token and refreshes it once it is within the expiry buffer.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import structlog

from slicesync.core.errors import OwnershipTokenError

logger = structlog.get_logger()


@dataclass(frozen=True)
class OwnershipToken:
    """Credential proving entitlement to one product's content.

    Attributes:
        token: Opaque token value
        expires_at: Expiry as a Unix timestamp in seconds
    """

    token: str
    expires_at: float


class SigningService(Protocol):
    """Authorization and URL-signing collaborator."""

    async def get_ownership_token(self, product_id: int) -> OwnershipToken | None:
        """Issue an ownership token, or None when the product is not owned."""
        ...

    async def sign_urls(self, token: str, product_id: int, paths: list[str]) -> list[str]:
        """Return one signed URL per path, in input order."""
        ...


class TokenCache:
    """Cached ownership token with an explicit freshness check.

    Args:
        product_id: Product the token is issued for
        fetch: Coroutine function returning a new token
        expiry_buffer: Seconds before expiry at which the token is refreshed
        clock: Time source returning Unix seconds
    """

    def __init__(
        self,
        product_id: int,
        fetch: Callable[[], Awaitable[OwnershipToken | None]],
        expiry_buffer: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.product_id = product_id
        self.expiry_buffer = expiry_buffer
        self._fetch = fetch
        self._clock = clock
        self._token: OwnershipToken | None = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    def is_fresh(self, now: float | None = None) -> bool:
        """Whether the cached token may still be used at ``now``."""
        if self._token is None:
            return False
        if now is None:
            now = self._clock()
        return now < self._token.expires_at - self.expiry_buffer

    async def get(self) -> str:
        """Return a usable token value, refreshing if needed.

        Raises:
            OwnershipTokenError: If the service returns no token
        """
        if self.is_fresh():
            assert self._token is not None
            return self._token.token

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.is_fresh():
                assert self._token is not None
                return self._token.token

            token = await self._fetch()
            if token is None or not token.token:
                raise OwnershipTokenError(self.product_id)

            self._token = token
            self.refresh_count += 1
            logger.debug(
                "ownership_token_refreshed",
                product_id=self.product_id,
                expires_in=round(token.expires_at - self._clock(), 1),
            )
            return token.token

    def invalidate(self) -> None:
        """Drop the cached token."""
        self._token = None


class MirrorSigningService:
    """Signing service for plain HTTP mirrors of the slice store.

    Tokens are minted locally with a fixed lifetime and URLs are the
    mirror base URL joined with the content path, carrying the token as a
    query parameter.

    Args:
        base_url: Mirror base URL
        token_lifetime: Lifetime of minted tokens in seconds
        clock: Time source returning Unix seconds
    """

    def __init__(
        self,
        base_url: str,
        token_lifetime: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_lifetime = token_lifetime
        self._clock = clock

    async def get_ownership_token(self, product_id: int) -> OwnershipToken | None:
        return OwnershipToken(
            token=uuid.uuid4().hex,
            expires_at=self._clock() + self.token_lifetime,
        )

    async def sign_urls(self, token: str, product_id: int, paths: list[str]) -> list[str]:
        return [
            f"{self.base_url}/{product_id}/{quote(path)}?token={quote(token)}"
            for path in paths
        ]
