"""Defines the CLI for refreshing upstream access tokens."""

import datetime
import logging
import sys

import click
from tabulate import tabulate

from sportproxy.conf import Settings
from sportproxy.errors import TokenRefreshError
from sportproxy.proxy.routes import build_route, make_client
from sportproxy.utils.cli import coro, mask_secret

logger = logging.getLogger(__name__)


@click.group()
def cli() -> None:
    """Refresh OAuth2 access tokens for the upstream APIs."""
    pass


@cli.command()
@click.option("-u", "--upstream", type=click.Choice(["foxy", "crm"]), default="foxy")
@coro
async def get(upstream: str) -> None:
    """Force a token refresh and show when it expires."""
    settings = Settings.load()
    async with make_client(settings.server.request_timeout) as client:
        route = build_route(getattr(settings, upstream), client, settings.server.request_timeout)
        try:
            token = await route.forwarder.token_cache.refresh()
        except TokenRefreshError as e:
            logger.error("Could not refresh the %s token (status %s)", upstream, e.status)
            logger.error("  %s", e.body)
            sys.exit(1)
    expires_at = datetime.datetime.fromtimestamp(token.expires_at, tz=datetime.timezone.utc)
    click.echo(
        tabulate(
            [
                ["Upstream", upstream],
                ["Token", mask_secret(token.value)],
                ["Expires at", expires_at.isoformat()],
            ],
            headers=["Key", "Value"],
            tablefmt="simple",
        )
    )


if __name__ == "__main__":
    cli()
