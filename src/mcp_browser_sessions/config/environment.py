"""Environment configuration and validation."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv, find_dotenv

from ..constants import (
    DEFAULT_CLEANUP_INTERVAL_SECS,
    DEFAULT_MAX_CONCURRENT_SESSIONS,
    DEFAULT_MAX_SESSIONS_PER_MINUTE,
    DEFAULT_NAVIGATION_TIMEOUT_SECS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_SESSION_TIMEOUT_SECS,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    MAX_CONCURRENT_SESSIONS,
    MIN_CONCURRENT_SESSIONS,
)

import logging
logger = logging.getLogger(__name__)


VALID_BROWSERS = ("chrome", "firefox", "edge")


@dataclass(frozen=True)
class ServerConfig:
    log_level: str = "INFO"
    log_dir: str = "logs"
    max_concurrent_sessions: int = DEFAULT_MAX_CONCURRENT_SESSIONS
    max_sessions_per_minute: int = DEFAULT_MAX_SESSIONS_PER_MINUTE
    session_timeout_secs: float = DEFAULT_SESSION_TIMEOUT_SECS
    cleanup_interval_secs: float = DEFAULT_CLEANUP_INTERVAL_SECS
    default_browser: str = "chrome"
    headless: bool = True
    viewport: Tuple[int, int] = (DEFAULT_VIEWPORT_WIDTH, DEFAULT_VIEWPORT_HEIGHT)
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    navigation_timeout_secs: float = DEFAULT_NAVIGATION_TIMEOUT_SECS


def _parse_number(name: str, default, *, minimum=None, maximum=None, cast=int):
    """
    Read a numeric env var. Invalid values log a warning and fall back to the
    default; out-of-range values are clamped.
    """
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Invalid number for env var {name}={raw!r}, using default: {default}")
        return default

    if minimum is not None and value < minimum:
        logger.warning(f"{name}={value} below minimum {minimum}, clamping")
        value = minimum
    if maximum is not None and value > maximum:
        logger.warning(f"{name}={value} above maximum {maximum}, clamping")
        value = maximum
    return value


def _parse_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in ("0", "false", "no", "off")


def _default_browser() -> str:
    raw = (os.getenv("MCP_DEFAULT_BROWSER") or "").strip().lower()
    if not raw:
        return "chrome"
    if raw not in VALID_BROWSERS:
        logger.warning(f"Unsupported MCP_DEFAULT_BROWSER={raw!r}, using 'chrome'")
        return "chrome"
    return raw


def get_server_config(dotenv_path: Optional[str] = None) -> ServerConfig:
    """
    Build the server configuration from environment variables.

    A ``.env`` file (found from the current working directory upward, or at
    ``dotenv_path``) is loaded first without overriding variables that are
    already set.

    Optional:   MCP_LOG_LEVEL, MCP_LOG_DIR
                MCP_MAX_SESSIONS (1..20), MCP_MAX_SESSIONS_PER_MINUTE
                MCP_SESSION_TIMEOUT_SECS, MCP_CLEANUP_INTERVAL_SECS
                MCP_DEFAULT_BROWSER (chrome | firefox | edge), MCP_HEADLESS
                MCP_VIEWPORT_WIDTH, MCP_VIEWPORT_HEIGHT
                MCP_RETRY_ATTEMPTS, MCP_NAVIGATION_TIMEOUT_SECS
    """
    load_dotenv(dotenv_path or find_dotenv(filename=".env", usecwd=True), override=False)

    return ServerConfig(
        log_level=(os.getenv("MCP_LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        log_dir=(os.getenv("MCP_LOG_DIR") or "logs").strip() or "logs",
        max_concurrent_sessions=_parse_number(
            "MCP_MAX_SESSIONS",
            DEFAULT_MAX_CONCURRENT_SESSIONS,
            minimum=MIN_CONCURRENT_SESSIONS,
            maximum=MAX_CONCURRENT_SESSIONS,
        ),
        max_sessions_per_minute=_parse_number(
            "MCP_MAX_SESSIONS_PER_MINUTE", DEFAULT_MAX_SESSIONS_PER_MINUTE, minimum=1
        ),
        session_timeout_secs=_parse_number(
            "MCP_SESSION_TIMEOUT_SECS", float(DEFAULT_SESSION_TIMEOUT_SECS), minimum=1.0, cast=float
        ),
        cleanup_interval_secs=_parse_number(
            "MCP_CLEANUP_INTERVAL_SECS", float(DEFAULT_CLEANUP_INTERVAL_SECS), minimum=1.0, cast=float
        ),
        default_browser=_default_browser(),
        headless=_parse_bool("MCP_HEADLESS", True),
        viewport=(
            _parse_number("MCP_VIEWPORT_WIDTH", DEFAULT_VIEWPORT_WIDTH, minimum=1),
            _parse_number("MCP_VIEWPORT_HEIGHT", DEFAULT_VIEWPORT_HEIGHT, minimum=1),
        ),
        retry_attempts=_parse_number("MCP_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS, minimum=0),
        navigation_timeout_secs=_parse_number(
            "MCP_NAVIGATION_TIMEOUT_SECS", DEFAULT_NAVIGATION_TIMEOUT_SECS, minimum=1.0, cast=float
        ),
    )


__all__ = ["ServerConfig", "VALID_BROWSERS", "get_server_config"]
