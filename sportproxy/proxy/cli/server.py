"""Defines the CLI for running the proxy and sending requests through it."""

import json
import logging
import sys

import click

from sportproxy.conf import Settings
from sportproxy.errors import ProxyError, UpstreamRequestError
from sportproxy.proxy.routes import build_routes, find_route, make_client
from sportproxy.proxy.server import ProxyServer
from sportproxy.utils.cli import coro

logger = logging.getLogger(__name__)


def _parse_query(values: tuple[str, ...]) -> list[tuple[str, str]]:
    query = []
    for value in values:
        key, sep, val = value.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected key=value, got {value!r}", param_hint="--query")
        query.append((key, val))
    return query


@click.command()
@click.option("--host", type=str, default=None, help="Interface to listen on")
@click.option("--port", type=int, default=None, help="Port to listen on")
def serve(host: str | None, port: int | None) -> None:
    """Run the proxy server."""
    settings = Settings.load()
    server = ProxyServer.from_settings(settings)
    if not server.routes:
        logger.warning("No upstreams configured; every request will return 404")
    server.run(
        host=settings.server.host if host is None else host,
        port=settings.server.port if port is None else port,
    )


@click.command()
@click.argument("method")
@click.argument("path")
@click.option("-d", "--data", type=str, default=None, help="JSON request body")
@click.option("-q", "--query", type=str, multiple=True, help="Query parameter as key=value")
@coro
async def request(method: str, path: str, data: str | None, query: tuple[str, ...]) -> None:
    """Send a single request through the proxy routes, e.g. `GET /foxycart/customers`."""
    settings = Settings.load()
    try:
        body = None if data is None else json.loads(data)
    except ValueError:
        raise click.BadParameter("Request body is not valid JSON", param_hint="--data")
    query_pairs = _parse_query(query)
    async with make_client(settings.server.request_timeout) as client:
        routes = build_routes(settings, client)
        route = find_route(routes, path)
        if route is None:
            raise click.BadParameter(f"No upstream configured for {path}", param_hint="PATH")
        try:
            result = await route.forwarder.forward(method, path, query_pairs, None, body)
            shaped = route.shape(path, result.body) if result.body is not None else None
        except UpstreamRequestError as e:
            logger.error("Got error %d from %s", e.status, e.url)
            logger.error("  %s", e.body)
            sys.exit(1)
        except ProxyError as e:
            logger.error("%s", e)
            sys.exit(1)
    click.echo(f"Status: {click.style(str(result.status), fg='green')}")
    if shaped is not None:
        click.echo(json.dumps(shaped, indent=2))
