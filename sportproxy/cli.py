"""Defines the top-level sportproxy CLI."""

import logging

import click
import colorlogging

from sportproxy.proxy.cli.config import cli as config_cli
from sportproxy.proxy.cli.server import request, serve
from sportproxy.proxy.cli.token import cli as token_cli
from sportproxy.utils.cli import recursive_help


@click.group()
def cli() -> None:
    """Command line interface for the storefront API proxy."""
    colorlogging.configure()

    # Suppress per-request logging from the HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


cli.add_command(serve, "serve")
cli.add_command(request, "request")
cli.add_command(token_cli, "token")
cli.add_command(config_cli, "config")

if __name__ == "__main__":
    # python -m sportproxy.cli
    print(recursive_help(cli))
