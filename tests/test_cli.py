"""Tests for the command line interface."""

from pathlib import Path
from typing import Iterator

import httpx
import pytest
from click.testing import CliRunner

from sportproxy.cli import cli
from sportproxy.conf import Settings
from sportproxy.utils.cli import mask_secret
from tests.conftest import API_ROOT, TOKEN_URL, FakeUpstream


@pytest.fixture(autouse=True)
def settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.setenv("SPORTPROXY_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("FOXY_CLIENT_ID", "client_gsIC67wRNW")
    monkeypatch.setenv("FOXY_CLIENT_SECRET", "very-secret-value")
    monkeypatch.delenv("CRM_API_ROOT", raising=False)
    Settings.load.cache_clear()
    yield
    Settings.load.cache_clear()


def test_mask_secret() -> None:
    assert mask_secret("") == ""
    assert mask_secret("abc") == "***"
    assert mask_secret("very-secret-value") == "*************alue"


def test_config_show_masks_secrets() -> None:
    result = CliRunner().invoke(cli, ["config", "show"])
    assert result.exit_code == 0, result.output
    assert "foxy.api_root" in result.output
    assert "very-secret-value" not in result.output
    assert "client_gsIC67wRNW" not in result.output
    assert "alue" in result.output


def test_request_rejects_unknown_prefix() -> None:
    result = CliRunner().invoke(cli, ["request", "GET", "/nowhere/customers"])
    assert result.exit_code == 2
    assert "No upstream configured" in result.output


def test_request_rejects_bad_query() -> None:
    result = CliRunner().invoke(cli, ["request", "GET", "/foxycart/customers", "-q", "missing-equals"])
    assert result.exit_code == 2


def test_request_rejects_bad_body() -> None:
    result = CliRunner().invoke(cli, ["request", "POST", "/foxycart/carts", "-d", "{nope"])
    assert result.exit_code == 2


@pytest.fixture
def mock_upstream(monkeypatch: pytest.MonkeyPatch) -> FakeUpstream:
    upstream = FakeUpstream()
    monkeypatch.setenv("FOXY_TOKEN_URL", TOKEN_URL)
    monkeypatch.setenv("FOXY_API_ROOT", API_ROOT)
    monkeypatch.delenv("FOXY_FALLBACK_API_ROOT", raising=False)

    def make_client(timeout: float = 10.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))

    monkeypatch.setattr("sportproxy.proxy.cli.token.make_client", make_client)
    monkeypatch.setattr("sportproxy.proxy.cli.server.make_client", make_client)
    return upstream


def test_token_get_shows_masked_token(mock_upstream: FakeUpstream) -> None:
    mock_upstream.token_value = "fresh-access-token"
    result = CliRunner().invoke(cli, ["token", "get"])
    assert result.exit_code == 0, result.output
    assert "Expires at" in result.output
    assert "fresh-access-token" not in result.output
    assert mask_secret("fresh-access-token") in result.output
    assert mock_upstream.token_calls == 1


def test_token_get_fails_on_rejected_credentials(mock_upstream: FakeUpstream) -> None:
    mock_upstream.token_status = 401
    mock_upstream.token_body = {"error": "invalid_grant"}
    result = CliRunner().invoke(cli, ["token", "get"])
    assert result.exit_code == 1


def test_request_prints_upstream_body(mock_upstream: FakeUpstream) -> None:
    mock_upstream.hosts["api.example.com"] = lambda request: httpx.Response(200, json={"id": 12})
    result = CliRunner().invoke(cli, ["request", "GET", "/foxycart/customers/12", "-q", "zoom=attributes"])
    assert result.exit_code == 0, result.output
    assert "Status: 200" in result.output
    assert '"id": 12' in result.output
    (request,) = mock_upstream.api_requests
    assert str(request.url) == "https://api.example.com/customers/12?zoom=attributes"
    assert request.headers["Authorization"] == "Bearer tok-1"


def test_request_applies_transform(mock_upstream: FakeUpstream, tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        "foxy:\n  transforms:\n    - pattern: /customers/.*\n      name: strip_links\n",
    )
    mock_upstream.hosts["api.example.com"] = lambda request: httpx.Response(
        200,
        json={"id": 12, "_links": {"self": {"href": "https://api.example.com/customers/12"}}},
    )
    result = CliRunner().invoke(cli, ["request", "GET", "/foxycart/customers/12"])
    assert result.exit_code == 0, result.output
    assert '"id": 12' in result.output
    assert "_links" not in result.output


def test_request_fails_on_upstream_error(mock_upstream: FakeUpstream) -> None:
    mock_upstream.hosts["api.example.com"] = lambda request: httpx.Response(404, json={"message": "gone"})
    result = CliRunner().invoke(cli, ["request", "GET", "/foxycart/customers/404"])
    assert result.exit_code == 1
    assert "Status:" not in result.output
