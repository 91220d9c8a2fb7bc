"""Defines the forwarder that relays a request to an upstream API.

The forwarder rewrites the inbound path onto the upstream's API root,
attaches the bearer token from its :class:`TokenCache`, and retries once
against the fallback host when the primary attempt fails.
"""

import logging
from types import TracebackType
from typing import Any, Mapping, Self, Sequence, Type

import httpx
from pydantic import BaseModel, Field
from yarl import URL

from sportproxy.errors import UpstreamRequestError, UpstreamResponseError
from sportproxy.proxy.token import DEFAULT_TIMEOUT, TokenCache

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class ForwardedRequest(BaseModel):
    method: str
    target_url: str
    headers: dict[str, str]
    body: Any = None


class UpstreamResponse(BaseModel):
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


def rewrite_path(path: str, prefix: str) -> str:
    """Strips ``prefix`` from the start of ``path``.

    Args:
        path: The inbound request path, e.g. ``/foxycart/customers/12``.
        prefix: The route prefix, e.g. ``/foxycart``.

    Returns:
        The remaining path, always starting with a slash.
    """
    prefix = prefix.rstrip("/")
    if path != prefix and not path.startswith(prefix + "/"):
        raise ValueError(f"Path {path!r} is not beneath {prefix!r}")
    return path[len(prefix) :] or "/"


def build_target_url(api_root: str, path: str, query: Sequence[tuple[str, str]] = ()) -> str:
    url = URL(api_root.rstrip("/") + path, encoded=True)
    if query:
        url = url.with_query(list(query))
    return str(url)


def swap_host(url: str, root: str) -> str:
    """Replaces the host (and port) of ``url`` with that of ``root``."""
    target, fallback = URL(url, encoded=True), URL(root)
    if fallback.host is None:
        raise ValueError(f"Fallback root {root!r} has no host")
    swapped = target.with_host(fallback.host)
    if fallback.explicit_port is not None:
        swapped = swapped.with_port(fallback.explicit_port)
    return str(swapped)


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class Forwarder:
    def __init__(
        self,
        prefix: str,
        api_root: str,
        token_cache: TokenCache,
        *,
        fallback_root: str | None = None,
        version_header: str | None = None,
        api_version: str | None = None,
        tenant_header: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.prefix = prefix
        self.api_root = api_root
        self.token_cache = token_cache
        self.fallback_root = fallback_root or None
        if self.fallback_root is not None and URL(self.fallback_root).host is None:
            raise ValueError(f"Fallback root {self.fallback_root!r} has no host")
        self.version_header = version_header or None
        self.api_version = api_version or None
        self.tenant_header = tenant_header or None
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def build_request(
        self,
        method: str,
        path: str,
        query: Sequence[tuple[str, str]] = (),
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> ForwardedRequest:
        method = method.upper()
        token = await self.token_cache.get_token()
        out_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.version_header is not None and self.api_version is not None:
            out_headers[self.version_header] = self.api_version
        if self.tenant_header is not None and headers is not None:
            tenant = next((v for k, v in headers.items() if k.lower() == self.tenant_header.lower()), None)
            if tenant is not None:
                out_headers[self.tenant_header] = tenant
        return ForwardedRequest(
            method=method,
            target_url=build_target_url(self.api_root, rewrite_path(path, self.prefix), query),
            headers=out_headers,
            body=body if method in MUTATING_METHODS else None,
        )

    async def forward(
        self,
        method: str,
        path: str,
        query: Sequence[tuple[str, str]] = (),
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> UpstreamResponse:
        request = await self.build_request(method, path, query, headers, body)
        try:
            return await self._send(request)
        except UpstreamRequestError as e:
            if self.fallback_root is None:
                raise
            fallback_url = swap_host(request.target_url, self.fallback_root)
            logger.warning("Primary request failed with status %d, retrying against %s", e.status, fallback_url)
            return await self._send(request.model_copy(update={"target_url": fallback_url}))

    async def _send(self, request: ForwardedRequest) -> UpstreamResponse:
        client = await self.get_client()
        kwargs: dict[str, Any] = {"headers": request.headers, "timeout": self.timeout}
        if request.body is not None:
            kwargs["json"] = request.body

        logger.debug("Forwarding %s %s", request.method, request.target_url)
        try:
            response = await client.request(request.method, request.target_url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Upstream %s is unreachable: %s", request.target_url, e)
            raise UpstreamRequestError(502, {"message": str(e)}, url=request.target_url) from e

        if not response.is_success:
            logger.error("Got error %d from %s", response.status_code, request.target_url)
            raise UpstreamRequestError(response.status_code, _parse_body(response), url=request.target_url)

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError as e:
                raise UpstreamResponseError(f"Non-JSON response from {request.target_url}") from e

        return UpstreamResponse(status=response.status_code, headers=dict(response.headers), body=body)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        await self.token_cache.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
