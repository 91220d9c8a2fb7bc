"""Shared fixtures for the proxy tests."""

from typing import Any, Callable

import httpx
import pytest

from sportproxy.proxy.forward import Forwarder
from sportproxy.proxy.token import TokenCache

TOKEN_URL = "https://auth.example.com/token"
API_ROOT = "https://api.example.com"
FALLBACK_ROOT = "https://backup.example.com"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Records outbound requests and answers them from per-host handlers."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.token_value = "tok-1"
        self.token_status = 200
        self.token_body: dict[str, Any] | None = None
        self.hosts: dict[str, Callable[[httpx.Request], httpx.Response]] = {
            "api.example.com": lambda request: httpx.Response(200, json={"ok": True}),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == TOKEN_URL:
            self.token_calls += 1
            body = self.token_body
            if body is None:
                body = {"access_token": self.token_value, "expires_in": 3600}
            return httpx.Response(self.token_status, json=body)
        if request.url.host not in self.hosts:
            raise httpx.ConnectError(f"Cannot reach {request.url.host}", request=request)
        return self.hosts[request.url.host](request)

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if str(request.url) != TOKEN_URL]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(upstream: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def token_cache(client: httpx.AsyncClient, clock: FakeClock) -> TokenCache:
    return TokenCache(TOKEN_URL, "client-id", "client-secret", "refresh-me", client=client, clock=clock)


@pytest.fixture
def forwarder(client: httpx.AsyncClient, token_cache: TokenCache) -> Forwarder:
    return Forwarder(
        "/foxycart",
        API_ROOT,
        token_cache,
        version_header="FOXY-API-VERSION",
        api_version="1",
        tenant_header="X-Store-Id",
        client=client,
    )
