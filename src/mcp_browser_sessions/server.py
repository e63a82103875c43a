"""
FastMCP server wiring.

``create_server`` registers one MCP tool per BrowserManager operation, the
``browser://status`` and ``browser://health`` resources, and a lifespan that
runs the idle-session cleanup scheduler and closes every browser on exit.
"""

import os
import time
import datetime
from contextlib import asynccontextmanager
from typing import Callable, List, Optional, Set

import psutil
from mcp.server.fastmcp import FastMCP

from . import __version__
from .browser.manager import BrowserManager
from .config import ServerConfig
from .constants import CONSOLE_DEFAULT_MAX_MESSAGES, MS_PER_SECOND
from .decorators import tool_envelope
from .errors import validation_error
from .sessions import CleanupScheduler, SchedulerState

import logging
logger = logging.getLogger(__name__)


SERVER_NAME = "mcp-browser-sessions"

INSTRUCTIONS = """
Browser automation with explicit sessions.

Call launch_browser first; it returns a session_id and the id of the first page.
Pass the session_id to every other tool. Page tools act on the active page
unless a page_id is given. Sessions idle for too long are closed automatically.
"""


class ToolRegistry:
    """Registers tools on a FastMCP instance, refusing duplicate names."""

    def __init__(self, mcp: FastMCP):
        self._mcp = mcp
        self._names: Set[str] = set()

    @property
    def names(self) -> List[str]:
        return sorted(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def register(self, name: str, fn: Callable, description: Optional[str] = None) -> Callable:
        if name in self._names:
            raise validation_error("tool name", f"duplicate tool registration: {name}")
        self._names.add(name)
        self._mcp.tool(name=name, description=description)(fn)
        logger.debug(f"Registered tool {name}")
        return fn

    def tool(self, name: Optional[str] = None, description: Optional[str] = None):
        def decorator(fn: Callable) -> Callable:
            return self.register(name or fn.__name__, fn, description)
        return decorator


def _health(manager: BrowserManager, scheduler: CleanupScheduler, started: float) -> dict:
    proc = psutil.Process(os.getpid())
    mem = proc.memory_info()
    return {
        "status": "degraded" if scheduler.state is SchedulerState.DISABLED else "healthy",
        "version": __version__,
        "uptime_ms": int((time.monotonic() - started) * MS_PER_SECOND),
        "memory": {"rss": mem.rss, "vms": mem.vms},
        "active_sessions": len(manager.sessions),
        "cleanup": {
            "state": scheduler.state.value,
            "consecutive_failures": scheduler.consecutive_failures,
        },
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }


def create_server(
    manager: BrowserManager,
    config: Optional[ServerConfig] = None,
    scheduler: Optional[CleanupScheduler] = None,
) -> FastMCP:
    """
    Build the FastMCP server around ``manager``.

    The cleanup scheduler is started when the server starts and stopped, with
    every remaining session closed, when it shuts down.
    """
    config = config or manager.config
    scheduler = scheduler or CleanupScheduler(
        sweep=lambda: manager.cleanup_expired_sessions(config.session_timeout_secs),
        interval_secs=config.cleanup_interval_secs,
    )
    started = time.monotonic()

    @asynccontextmanager
    async def lifespan(server):
        logger.info(
            f"Starting {SERVER_NAME} v{__version__} "
            f"(max_sessions={config.max_concurrent_sessions}, "
            f"session_timeout={config.session_timeout_secs}s)"
        )
        scheduler.start()
        try:
            yield
        finally:
            logger.info("Shutting down...")
            await scheduler.stop()
            result = await manager.shutdown()
            logger.info(
                f"Shutdown complete: closed={result['closed_count']}, failed={result['failed_count']}"
            )

    mcp = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS, lifespan=lifespan)
    tools = ToolRegistry(mcp)

    #region Tools -- Sessions
    @tools.tool("launch_browser")
    @tool_envelope
    async def launch_browser(
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        user_agent: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        proxy: Optional[str] = None,
    ) -> str:
        """
        Launch a new browser session.

        Args:
            browser_type: "chrome", "firefox" or "edge" (server default if omitted)
            headless: Run without a visible window (server default if omitted)
            viewport_width: Window width in pixels
            viewport_height: Window height in pixels
            user_agent: Custom user agent string
            timeout_sec: Give up if the browser has not started within this time
            proxy: Proxy server, e.g. "http://host:3128" (Chromium browsers only)

        Returns:
            JSON with session_id and the page_id of the first page.
        """
        viewport = None
        if viewport_width or viewport_height:
            default_w, default_h = manager.config.viewport
            viewport = (viewport_width or default_w, viewport_height or default_h)
        return await manager.launch_browser(
            browser_type=browser_type,
            headless=headless,
            viewport=viewport,
            user_agent=user_agent,
            timeout_secs=timeout_sec,
            proxy=proxy,
        )

    @tools.tool("close_browser")
    @tool_envelope
    async def close_browser(session_id: str) -> str:
        """
        Close a browser session and all of its pages.

        Args:
            session_id: Session returned by launch_browser
        """
        return await manager.close_browser(session_id)

    @tools.tool("list_sessions")
    @tool_envelope
    async def list_sessions() -> str:
        """List open browser sessions with their page counts and last activity."""
        return {"sessions": manager.list_sessions()}
    #endregion

    #region Tools -- Pages
    @tools.tool("new_page")
    @tool_envelope
    async def new_page(session_id: str) -> str:
        """Open a new tab in the session and make it the active page."""
        return await manager.new_page(session_id)

    @tools.tool("close_page")
    @tool_envelope
    async def close_page(session_id: str, page_id: str) -> str:
        """
        Close one page. If it was active, the oldest remaining page becomes active.

        Args:
            session_id: Owning session
            page_id: Page to close
        """
        return await manager.close_page(session_id, page_id)

    @tools.tool("switch_page")
    @tool_envelope
    async def switch_page(session_id: str, page_id: str) -> str:
        """Make ``page_id`` the active page of the session."""
        return manager.switch_page(session_id, page_id)

    @tools.tool("list_pages")
    @tool_envelope
    async def list_pages(session_id: str) -> str:
        """List the session's pages with URL, title and which one is active."""
        return {"session_id": session_id, "pages": await manager.list_pages(session_id)}
    #endregion

    #region Tools -- Navigation
    @tools.tool("navigate_to_url")
    @tool_envelope
    async def navigate_to_url(
        session_id: str,
        url: str,
        page_id: Optional[str] = None,
        timeout_sec: Optional[float] = None,
    ) -> str:
        """
        Navigate a page to ``url``.

        Args:
            session_id: Owning session
            url: Absolute http(s) URL
            page_id: Target page (the active page if omitted)
            timeout_sec: Page load timeout (server default if omitted)

        Returns:
            JSON with the final url and title.
        """
        return await manager.navigate(session_id, url, page_id=page_id, timeout_secs=timeout_sec)

    @tools.tool("get_page_info")
    @tool_envelope
    async def get_page_info(session_id: str, page_id: Optional[str] = None) -> str:
        """Current URL and title of a page (the active page if omitted)."""
        return await manager.page_info(session_id, page_id)
    #endregion

    #region Tools -- Console
    @tools.tool("start_console_capture")
    @tool_envelope
    async def start_console_capture(
        session_id: str,
        page_id: Optional[str] = None,
        types: Optional[List[str]] = None,
        max_messages: int = CONSOLE_DEFAULT_MAX_MESSAGES,
    ) -> str:
        """
        Start buffering browser console messages for a page.

        Args:
            session_id: Owning session
            page_id: Target page (the active page if omitted)
            types: Message types to keep (log, info, warning, error, debug)
            max_messages: Buffer size; the oldest messages are dropped first
        """
        return manager.start_console_capture(session_id, page_id, types=types, max_messages=max_messages)

    @tools.tool("get_console_messages")
    @tool_envelope
    async def get_console_messages(
        session_id: str,
        page_id: Optional[str] = None,
        clear: bool = False,
    ) -> str:
        """Return buffered console messages for a page, optionally clearing the buffer."""
        return await manager.get_console_messages(session_id, page_id, clear=clear)
    #endregion

    #region Resources
    @mcp.resource("browser://status")
    @tool_envelope
    def server_status() -> str:
        """Session table: utilization, per-session idle time and rate limit state."""
        return manager.get_server_status()

    @mcp.resource("browser://health")
    @tool_envelope
    def server_health() -> str:
        """Process health: uptime, memory and cleanup scheduler state."""
        return _health(manager, scheduler, started)
    #endregion

    mcp.tool_registry = tools
    mcp.cleanup_scheduler = scheduler
    return mcp


__all__ = ["SERVER_NAME", "ToolRegistry", "create_server"]
