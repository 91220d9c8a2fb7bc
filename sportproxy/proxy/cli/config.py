"""Defines the CLI for inspecting the effective proxy settings."""

import click
from tabulate import tabulate

from sportproxy.conf import Settings, UpstreamSettings, get_path, get_upstreams
from sportproxy.utils.cli import mask_secret

SECRET_FIELDS = ("client_id", "client_secret", "refresh_token")


def _upstream_rows(upstream: UpstreamSettings) -> list[list[str]]:
    rows = []
    for key in ("prefix", "api_root", "fallback_root", "token_url", *SECRET_FIELDS, "version_header", "api_version"):
        value = str(getattr(upstream, key))
        if key in SECRET_FIELDS:
            value = mask_secret(value)
        rows.append([f"{upstream.name}.{key}", value or click.style("unset", fg="red")])
    for rule in upstream.transforms:
        rows.append([f"{upstream.name}.transform", f"{rule.pattern} -> {rule.name}({rule.arg})"])
    return rows


@click.group()
def cli() -> None:
    """Inspect the proxy settings."""
    pass


@cli.command()
def show() -> None:
    """Show the effective settings, with credentials masked."""
    settings = Settings.load()
    rows = [
        ["config_dir", str(get_path())],
        ["server.host", settings.server.host],
        ["server.port", str(settings.server.port)],
        ["server.request_timeout", str(settings.server.request_timeout)],
        ["server.allow_origin", settings.server.allow_origin],
    ]
    upstreams = get_upstreams(settings)
    for upstream in upstreams:
        rows.extend(_upstream_rows(upstream))
    click.echo(tabulate(rows, headers=["Key", "Value"], tablefmt="simple"))
    if not upstreams:
        click.echo(click.style("No upstreams configured", fg="red"))


if __name__ == "__main__":
    cli()
