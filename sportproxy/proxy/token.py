"""Defines the access token cache for an OAuth2 refresh-token grant."""

import asyncio
import logging
import time
from types import TracebackType
from typing import Callable, Self, Type

import httpx
from pydantic import BaseModel, ValidationError

from sportproxy.errors import TokenRefreshError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 3600.0
DEFAULT_TIMEOUT = 10.0


class CachedToken(BaseModel):
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenResponse(BaseModel):
    access_token: str
    expires_in: float | None = None
    token_type: str | None = None
    scope: str | None = None


class TokenCache:
    """Holds a single bearer token and refreshes it when it expires.

    Concurrent callers that find the slot empty or expired wait on the
    same lock, so only one refresh is in flight at a time and everyone
    gets the token it produced.

    Args:
        token_url: The OAuth2 token endpoint.
        client_id: The OAuth2 client ID.
        client_secret: The OAuth2 client secret.
        refresh_token: The long-lived refresh token.
        default_ttl: Lifetime to assume when the endpoint omits ``expires_in``.
        client: HTTP client to use; one is created on demand if omitted.
        timeout: Timeout for the refresh call, in seconds.
        clock: Returns the current time as unix seconds.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        default_ttl: float = DEFAULT_TOKEN_TTL,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.default_ttl = default_ttl
        self.timeout = timeout
        self.clock = clock
        self._client = client
        self._owns_client = client is None
        self._token: CachedToken | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> CachedToken | None:
        return self._token

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def get_token(self) -> str:
        """Returns a bearer token that is valid right now."""
        token = self._token
        if token is not None and token.is_valid(self.clock()):
            return token.value
        async with self._lock:
            # Another caller may have refreshed while we were waiting.
            token = self._token
            if token is not None and token.is_valid(self.clock()):
                return token.value
            return (await self._refresh()).value

    async def refresh(self) -> CachedToken:
        """Refreshes the token even if the cached one is still valid."""
        async with self._lock:
            return await self._refresh()

    def invalidate(self) -> None:
        self._token = None

    async def _refresh(self) -> CachedToken:
        client = await self.get_client()
        logger.debug("Refreshing access token from %s", self.token_url)
        try:
            response = await client.post(
                self.token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Token endpoint %s is unreachable: %s", self.token_url, e)
            raise TokenRefreshError(None, str(e)) from e

        if response.is_error:
            logger.error("Token endpoint returned %d", response.status_code)
            raise TokenRefreshError(response.status_code, response.text)

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenRefreshError(response.status_code, response.text) from e

        now = self.clock()
        ttl = self.default_ttl if token_response.expires_in is None else token_response.expires_in
        self._token = CachedToken(value=token_response.access_token, expires_at=now + ttl)
        logger.info("Refreshed access token, expires in %.0f seconds", ttl)
        return self._token

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
