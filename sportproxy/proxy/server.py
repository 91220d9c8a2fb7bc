"""Defines the aiohttp application that serves the proxy.

Every path beneath a configured prefix is handled by the same forwarding
handler. For example, with the default settings:

   GET /foxycart/customers/12?zoom=attributes

is relayed as:

   GET https://api.foxycart.com/customers/12?zoom=attributes
"""

import logging
from typing import Awaitable, Callable, Mapping, Sequence

import httpx
from aiohttp import web

from sportproxy.conf import DEFAULT_ALLOW_HEADERS, DEFAULT_ALLOW_METHODS, Settings
from sportproxy.errors import TokenRefreshError, UpstreamRequestError, UpstreamResponseError
from sportproxy.proxy.forward import MUTATING_METHODS
from sportproxy.proxy.routes import ProxyRoute, build_routes, find_route, make_client

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Upstream response headers that are passed back to the caller.
RELAYED_HEADERS = ("Location", "ETag", "Last-Modified")


def cors_middleware(headers: Mapping[str, str]) -> Callable[[web.Request, Handler], Awaitable[web.StreamResponse]]:
    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)
        response.headers.update(headers)
        return response

    return middleware


def with_tenant_headers(allow_headers: str, routes: Sequence[ProxyRoute]) -> str:
    """Adds each route's tenant header to the allowed request headers."""
    names = [name.strip() for name in allow_headers.split(",") if name.strip()]
    for route in routes:
        tenant = route.forwarder.tenant_header
        if tenant is not None and tenant.lower() not in {name.lower() for name in names}:
            names.append(tenant)
    return ", ".join(names)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except TokenRefreshError as e:
        logger.error("Token refresh failed for %s: %s", request.path, e)
        return web.json_response({"error": "Failed to refresh upstream access token"}, status=500)
    except UpstreamRequestError as e:
        return web.json_response(
            {
                "error": f"Upstream request failed for {request.path}",
                "status": e.status,
                "detail": e.body,
            },
            status=e.status,
        )
    except UpstreamResponseError as e:
        logger.error("Unexpected upstream response for %s: %s", request.path, e)
        return web.json_response({"error": "Unexpected response from upstream"}, status=500)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return web.json_response({"error": e.reason}, status=e.status)
    except Exception:
        logger.exception("Error handling %s %s", request.method, request.path)
        return web.json_response({"error": f"Error fetching data for {request.path}"}, status=500)


class ProxyServer:
    def __init__(
        self,
        routes: Sequence[ProxyRoute],
        *,
        allow_origin: str = "*",
        allow_methods: str = DEFAULT_ALLOW_METHODS,
        allow_headers: str = DEFAULT_ALLOW_HEADERS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the proxy server.

        Args:
            routes: The route table to dispatch through.
            allow_origin: Value of ``Access-Control-Allow-Origin``.
            allow_methods: Value of ``Access-Control-Allow-Methods``.
            allow_headers: Value of ``Access-Control-Allow-Headers``; route tenant headers are appended.
            client: HTTP client shared by the routes; closed on cleanup.
        """
        self.routes = list(routes)
        allow_headers = with_tenant_headers(allow_headers, self.routes)
        self.cors_headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": allow_methods,
            "Access-Control-Allow-Headers": allow_headers,
        }
        self._client = client
        self.app = web.Application(middlewares=[cors_middleware(self.cors_headers), error_middleware])
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_route("*", "/{tail:.*}", self.handle_proxy)
        self.app.on_cleanup.append(self.on_cleanup)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProxyServer":
        client = make_client(settings.server.request_timeout)
        return cls(
            build_routes(settings, client),
            allow_origin=settings.server.allow_origin,
            allow_methods=settings.server.allow_methods,
            allow_headers=settings.server.allow_headers,
            client=client,
        )

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "routes": [route.prefix for route in self.routes]})

    async def handle_proxy(self, request: web.Request) -> web.StreamResponse:
        """Forwards the request to the upstream that owns its path."""
        path = request.rel_url.raw_path
        route = find_route(self.routes, path)
        if route is None:
            raise web.HTTPNotFound(reason=f"No upstream configured for {request.path}")

        body = None
        if request.method in MUTATING_METHODS and request.can_read_body:
            try:
                body = await request.json()
            except ValueError:
                raise web.HTTPBadRequest(reason="Request body is not valid JSON")

        logger.info("%s %s -> %s", request.method, request.path, route.name)
        result = await route.forwarder.forward(
            request.method,
            path,
            list(request.query.items()),
            request.headers,
            body,
        )

        if result.body is None:
            response: web.Response = web.Response(status=result.status)
        else:
            response = web.json_response(route.shape(path, result.body), status=result.status)
        upstream_headers = {key.lower(): value for key, value in result.headers.items()}
        for name in RELAYED_HEADERS:
            if (value := upstream_headers.get(name.lower())) is not None:
                response.headers[name] = value
        return response

    async def on_cleanup(self, app: web.Application) -> None:
        for route in self.routes:
            await route.forwarder.close()
        if self._client is not None:
            await self._client.aclose()

    def run(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        """Run the proxy server."""
        logger.info("Proxy server running on %s:%d", host, port)
        web.run_app(self.app, host=host, port=port, print=None)
