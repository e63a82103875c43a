"""Configuration management for the browser session server."""

from .environment import (
    ServerConfig,
    VALID_BROWSERS,
    get_server_config,
)

__all__ = [
    "ServerConfig",
    "VALID_BROWSERS",
    "get_server_config",
]
