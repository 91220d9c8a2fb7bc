"""Defines the common interface for the sportproxy package."""

__version__ = "0.1.0"

from pathlib import Path

from sportproxy.proxy.server import ProxyServer

ROOT_DIR = Path(__file__).parent
