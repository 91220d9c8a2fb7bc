"""Defines the errors raised while talking to the upstream APIs."""

from typing import Any


class ProxyError(Exception):
    """Base class for errors raised by the proxy."""


class TokenRefreshError(ProxyError):
    """The token endpoint was unreachable or rejected the credentials."""

    def __init__(self, status: int | None, body: str) -> None:
        super().__init__(f"Token refresh failed with status {status}: {body}")
        self.status = status
        self.body = body


class UpstreamRequestError(ProxyError):
    """The upstream API answered with a non-2xx status, or could not be reached."""

    def __init__(self, status: int, body: Any, url: str | None = None) -> None:
        super().__init__(f"API request failed with status {status}: {body}")
        self.status = status
        self.body = body
        self.url = url


class UpstreamResponseError(ProxyError):
    """The upstream API answered with a body that is not the expected JSON."""
