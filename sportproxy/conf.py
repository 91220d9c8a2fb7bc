"""Defines the proxy settings.

Every value defaults to an environment variable, so credentials never
live in the source tree. A ``settings.yaml`` file in the config directory
can override any of them.
"""

import functools
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path

from omegaconf import II, OmegaConf

SETTINGS_FILE_NAME = "settings.yaml"

# Header names that are sent back on every response, including preflight.
DEFAULT_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
DEFAULT_ALLOW_HEADERS = "Content-Type, Authorization"


def get_path() -> Path:
    if "SPORTPROXY_CONFIG_DIR" in os.environ:
        return Path(os.environ["SPORTPROXY_CONFIG_DIR"]).expanduser().resolve()
    return Path("~/.sportproxy/").expanduser().resolve()


@dataclass
class TransformSettings:
    pattern: str = ".*"
    name: str = "identity"
    arg: str = ""


@dataclass
class UpstreamSettings:
    name: str = ""
    prefix: str = ""
    api_root: str = ""
    fallback_root: str = ""
    token_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    version_header: str = ""
    api_version: str = ""
    tenant_header: str = ""
    default_token_ttl: float = 3600.0
    transforms: list[TransformSettings] = field(default_factory=list)


def _foxy_settings() -> UpstreamSettings:
    return UpstreamSettings(
        name="foxy",
        prefix="/foxycart",
        api_root=II("oc.env:FOXY_API_ROOT,'https://api.foxycart.com'"),
        fallback_root=II("oc.env:FOXY_FALLBACK_API_ROOT,''"),
        token_url=II("oc.env:FOXY_TOKEN_URL,'https://api.foxycart.com/token'"),
        client_id=II("oc.env:FOXY_CLIENT_ID,''"),
        client_secret=II("oc.env:FOXY_CLIENT_SECRET,''"),
        refresh_token=II("oc.env:FOXY_REFRESH_TOKEN,''"),
        version_header="FOXY-API-VERSION",
        api_version="1",
        tenant_header=II("oc.env:FOXY_TENANT_HEADER,''"),
    )


def _crm_settings() -> UpstreamSettings:
    return UpstreamSettings(
        name="crm",
        prefix="/crm",
        api_root=II("oc.env:CRM_API_ROOT,''"),
        fallback_root=II("oc.env:CRM_FALLBACK_API_ROOT,''"),
        token_url=II("oc.env:CRM_TOKEN_URL,''"),
        client_id=II("oc.env:CRM_CLIENT_ID,''"),
        client_secret=II("oc.env:CRM_CLIENT_SECRET,''"),
        refresh_token=II("oc.env:CRM_REFRESH_TOKEN,''"),
        version_header=II("oc.env:CRM_VERSION_HEADER,''"),
        api_version=II("oc.env:CRM_API_VERSION,''"),
        tenant_header=II("oc.env:CRM_TENANT_HEADER,''"),
    )


@dataclass
class ServerSettings:
    host: str = field(default=II("oc.env:SPORTPROXY_HOST,'0.0.0.0'"))
    port: int = field(default=II("oc.env:PORT,3000"))
    request_timeout: float = field(default=II("oc.env:SPORTPROXY_TIMEOUT,10.0"))
    allow_origin: str = "*"
    allow_methods: str = DEFAULT_ALLOW_METHODS
    allow_headers: str = DEFAULT_ALLOW_HEADERS


@dataclass
class Settings:
    server: ServerSettings = field(default_factory=ServerSettings)
    foxy: UpstreamSettings = field(default_factory=_foxy_settings)
    crm: UpstreamSettings = field(default_factory=_crm_settings)

    @staticmethod
    @functools.lru_cache
    def load() -> "Settings":
        config = OmegaConf.structured(Settings)
        if (settings_path := get_path() / SETTINGS_FILE_NAME).exists():
            try:
                with open(settings_path, "r") as f:
                    raw_settings = OmegaConf.load(f)
                    config = OmegaConf.merge(config, raw_settings)
            except Exception as e:
                warnings.warn(f"Failed to load settings: {e}")
        return config


def get_upstreams(settings: Settings) -> list[UpstreamSettings]:
    """Returns the upstreams that have an API root configured."""
    return [upstream for upstream in (settings.foxy, settings.crm) if upstream.api_root]
