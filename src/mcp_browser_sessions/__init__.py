"""
MCP server exposing browser automation over Selenium, with a managed session
lifecycle.

Every ``launch_browser`` call creates an isolated session (its own driver
process) identified by a session id. Sessions hold pages (browser tabs)
identified by page ids; one page per session is active and is the default
target of page operations.

Sessions are admitted through a sliding-window rate limiter and a
concurrent-session cap, and sessions left idle longer than the configured
timeout are closed by a periodic cleanup sweep.
"""

__version__ = "0.1.0"

from .errors import BrowserToolError, ErrorCode

__all__ = ["BrowserToolError", "ErrorCode", "__version__"]
