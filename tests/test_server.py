# tests/test_server.py
import json
import asyncio
import pytest

from mcp.server.fastmcp import FastMCP

from mcp_browser_sessions.browser.manager import BrowserManager
from mcp_browser_sessions.config import ServerConfig
from mcp_browser_sessions.errors import BrowserToolError, ErrorCode
from mcp_browser_sessions.server import ToolRegistry, create_server
from mcp_browser_sessions.sessions import SchedulerState

from _utils import FakeLauncher

EXPECTED_TOOLS = {
    "launch_browser",
    "close_browser",
    "list_sessions",
    "new_page",
    "close_page",
    "switch_page",
    "list_pages",
    "navigate_to_url",
    "get_page_info",
    "start_console_capture",
    "get_console_messages",
}


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture
def manager():
    return BrowserManager(ServerConfig(), launcher=FakeLauncher())


def test_registry_rejects_duplicate_names():
    registry = ToolRegistry(FastMCP("registry-test"))

    async def ping() -> str:
        return "pong"

    registry.register("ping", ping)
    with pytest.raises(BrowserToolError) as exc:
        registry.register("ping", ping)
    assert exc.value.code is ErrorCode.VALIDATION_FAILED
    assert "ping" in exc.value.message
    assert registry.names == ["ping"]
    assert "ping" in registry


def test_create_server_registers_every_tool(manager, event_loop):
    mcp = create_server(manager)
    assert set(mcp.tool_registry.names) == EXPECTED_TOOLS

    tools = event_loop.run_until_complete(mcp.list_tools())
    assert {t.name for t in tools} == EXPECTED_TOOLS

    launch = next(t for t in tools if t.name == "launch_browser")
    assert "browser_type" in launch.inputSchema["properties"]


def test_create_server_exposes_status_and_health_resources(manager, event_loop):
    mcp = create_server(manager)
    resources = event_loop.run_until_complete(mcp.list_resources())
    assert {str(r.uri).rstrip("/") for r in resources} == {"browser://status", "browser://health"}


def test_health_resource_reports_scheduler_and_memory(manager, event_loop):
    mcp = create_server(manager)

    async def test_logic():
        contents = list(await mcp.read_resource("browser://health"))
        return json.loads(contents[0].content)

    health = event_loop.run_until_complete(test_logic())
    assert health["ok"] is True
    assert health["status"] == "healthy"
    assert health["active_sessions"] == 0
    assert health["memory"]["rss"] > 0
    assert health["cleanup"]["state"] == SchedulerState.IDLE.value


def test_scheduler_sweeps_through_manager(manager, event_loop):
    mcp = create_server(manager, ServerConfig(session_timeout_secs=1, cleanup_interval_secs=5))

    async def test_logic():
        await manager.launch_browser()
        return await mcp.cleanup_scheduler.run_once()

    result = event_loop.run_until_complete(test_logic())
    assert result.cleaned == 0
    assert len(manager.sessions) == 1
