"""Defines the route table that maps path prefixes to upstream APIs."""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from sportproxy.conf import Settings, UpstreamSettings, get_upstreams
from sportproxy.proxy.forward import Forwarder, rewrite_path
from sportproxy.proxy.token import DEFAULT_TIMEOUT, TokenCache
from sportproxy.proxy.transforms import TransformRule

logger = logging.getLogger(__name__)


@dataclass
class ProxyRoute:
    name: str
    prefix: str
    forwarder: Forwarder
    rules: list[TransformRule] = field(default_factory=list)

    def matches(self, path: str) -> bool:
        prefix = self.prefix.rstrip("/")
        return path == prefix or path.startswith(prefix + "/")

    def shape(self, path: str, body: Any) -> Any:
        """Applies the first transform rule matching the rewritten path."""
        local_path = rewrite_path(path, self.prefix)
        for rule in self.rules:
            if rule.matches(local_path):
                return rule.apply(body)
        return body


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout))


def find_route(routes: Sequence[ProxyRoute], path: str) -> ProxyRoute | None:
    """Returns the route with the longest prefix matching ``path``."""
    candidates = [route for route in routes if route.matches(path)]
    if not candidates:
        return None
    return max(candidates, key=lambda route: len(route.prefix.rstrip("/")))


def build_route(
    upstream: UpstreamSettings,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProxyRoute:
    token_cache = TokenCache(
        upstream.token_url,
        upstream.client_id,
        upstream.client_secret,
        upstream.refresh_token,
        default_ttl=upstream.default_token_ttl,
        client=client,
        timeout=timeout,
    )
    forwarder = Forwarder(
        upstream.prefix,
        upstream.api_root,
        token_cache,
        fallback_root=upstream.fallback_root,
        version_header=upstream.version_header,
        api_version=upstream.api_version,
        tenant_header=upstream.tenant_header,
        client=client,
        timeout=timeout,
    )
    rules = [TransformRule.create(rule.pattern, rule.name, rule.arg) for rule in upstream.transforms]
    return ProxyRoute(name=upstream.name, prefix=upstream.prefix, forwarder=forwarder, rules=rules)


def build_routes(settings: Settings, client: httpx.AsyncClient | None = None) -> list[ProxyRoute]:
    routes = [build_route(upstream, client, settings.server.request_timeout) for upstream in get_upstreams(settings)]
    for route in routes:
        logger.info("Proxying %s/* to %s", route.prefix.rstrip("/"), route.forwarder.api_root)
    return routes
