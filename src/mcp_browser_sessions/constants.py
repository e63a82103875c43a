"""
Global constants and configuration defaults.
No dependencies - safe to import from anywhere.
"""

# ============================================================================
# Time
# ============================================================================

SECONDS_PER_MINUTE = 60
MS_PER_SECOND = 1_000


# ============================================================================
# Session Limits
# ============================================================================

DEFAULT_MAX_CONCURRENT_SESSIONS = 5
MIN_CONCURRENT_SESSIONS = 1
MAX_CONCURRENT_SESSIONS = 20
"""Hard ceiling for MCP_MAX_SESSIONS; larger values are clamped."""

DEFAULT_MAX_SESSIONS_PER_MINUTE = 10

DEFAULT_SESSION_TIMEOUT_SECS = 30 * SECONDS_PER_MINUTE
"""Idle time after which a session is reclaimed by the cleanup sweep."""

DEFAULT_CLEANUP_INTERVAL_SECS = 1 * SECONDS_PER_MINUTE
"""Period of the background cleanup sweep."""

MAX_CLEANUP_FAILURES = 5
"""Consecutive sweep failures after which the cleanup scheduler disables itself."""


# ============================================================================
# Rate Limiting
# ============================================================================

DEFAULT_MAX_TRACKED_REQUESTS = 100
"""Upper bound on timestamps kept by a RateLimiter, regardless of window."""

RATE_LIMIT_WINDOW_SECS = float(SECONDS_PER_MINUTE)
"""Window used for session-creation admission."""


# ============================================================================
# Browser Defaults
# ============================================================================

DEFAULT_VIEWPORT_WIDTH = 1366
DEFAULT_VIEWPORT_HEIGHT = 900

DEFAULT_NAVIGATION_TIMEOUT_SECS = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECS = 0.5
MAX_RETRY_DELAY_SECS = 30.0


# ============================================================================
# Console Capture
# ============================================================================

CONSOLE_DEFAULT_TYPES = ("log", "info", "warning", "error", "debug")
CONSOLE_DEFAULT_MAX_MESSAGES = 100


# ============================================================================
# Logging
# ============================================================================

LOG_FILE_NAME = "browser-sessions.log"
MAX_LOG_FILE_BYTES = 10 * 1024 * 1024
MAX_LOG_FILES = 10


# ============================================================================
# Page Summaries
# ============================================================================

CLOSED_PAGE_URL = "about:blank"
CLOSED_PAGE_TITLE = "<closed>"


__all__ = [
    "SECONDS_PER_MINUTE",
    "MS_PER_SECOND",
    "DEFAULT_MAX_CONCURRENT_SESSIONS",
    "MIN_CONCURRENT_SESSIONS",
    "MAX_CONCURRENT_SESSIONS",
    "DEFAULT_MAX_SESSIONS_PER_MINUTE",
    "DEFAULT_SESSION_TIMEOUT_SECS",
    "DEFAULT_CLEANUP_INTERVAL_SECS",
    "MAX_CLEANUP_FAILURES",
    "DEFAULT_MAX_TRACKED_REQUESTS",
    "RATE_LIMIT_WINDOW_SECS",
    "DEFAULT_VIEWPORT_WIDTH",
    "DEFAULT_VIEWPORT_HEIGHT",
    "DEFAULT_NAVIGATION_TIMEOUT_SECS",
    "DEFAULT_RETRY_ATTEMPTS",
    "DEFAULT_RETRY_DELAY_SECS",
    "MAX_RETRY_DELAY_SECS",
    "CONSOLE_DEFAULT_TYPES",
    "CONSOLE_DEFAULT_MAX_MESSAGES",
    "LOG_FILE_NAME",
    "MAX_LOG_FILE_BYTES",
    "MAX_LOG_FILES",
    "CLOSED_PAGE_URL",
    "CLOSED_PAGE_TITLE",
]
