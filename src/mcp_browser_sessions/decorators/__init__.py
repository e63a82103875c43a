# mcp_browser_sessions/decorators/__init__.py

from .envelope import tool_envelope, error_payload

__all__ = [
    "tool_envelope",
    "error_payload",
]
