# tests/test_browser_manager.py
import asyncio
import pytest

from mcp_browser_sessions.browser.manager import BrowserManager, validate_url
from mcp_browser_sessions.config import ServerConfig
from mcp_browser_sessions.errors import BrowserToolError, ErrorCode
from mcp_browser_sessions.sessions import SessionManager

from _utils import FakeClock, FakeLauncher

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def manager(launcher):
    cfg = ServerConfig(max_concurrent_sessions=2, max_sessions_per_minute=50, retry_attempts=3)
    return BrowserManager(cfg, launcher=launcher)


def run(loop, coro):
    return loop.run_until_complete(coro)


def test_launch_registers_session_with_first_page(manager, launcher, event_loop):
    out = run(event_loop, manager.launch_browser(browser_type="firefox", headless=False))
    sid, pid = out["session_id"], out["page_id"]

    assert out["browser_type"] == "firefox"
    assert out["headless"] is False
    assert manager.sessions.get_active_page_id(sid) == pid
    assert launcher.calls[0].viewport == (1366, 900)


def test_launch_uses_config_defaults(manager, launcher, event_loop):
    run(event_loop, manager.launch_browser())
    opts = launcher.calls[0]
    assert opts.browser_type == "chrome"
    assert opts.headless is True


def test_launch_rejected_at_capacity_without_calling_launcher(manager, launcher, event_loop):
    run(event_loop, manager.launch_browser())
    run(event_loop, manager.launch_browser())
    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.launch_browser())
    assert exc.value.code is ErrorCode.CAPACITY_EXCEEDED
    assert len(launcher.calls) == 2


def test_concurrent_launches_respect_capacity(manager, launcher, event_loop):
    async def test_logic():
        return await asyncio.gather(*(manager.launch_browser() for _ in range(4)), return_exceptions=True)

    results = run(event_loop, test_logic())
    errors = [r for r in results if isinstance(r, BrowserToolError)]
    assert len(errors) == 2
    assert all(e.code is ErrorCode.CAPACITY_EXCEEDED for e in errors)
    assert len(manager.sessions) == 2


def test_launch_failure_leaves_no_session(event_loop):
    launcher = FakeLauncher(error=BrowserToolError(ErrorCode.BROWSER_LAUNCH_FAILED, "no chrome"))
    manager = BrowserManager(ServerConfig(), launcher=launcher)
    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.launch_browser())
    assert exc.value.code is ErrorCode.BROWSER_LAUNCH_FAILED
    assert len(manager.sessions) == 0


def test_close_browser_closes_and_forgets(manager, launcher, event_loop):
    sid = run(event_loop, manager.launch_browser())["session_id"]
    out = run(event_loop, manager.close_browser(sid))
    assert out == {"session_id": sid, "closed": True}
    assert launcher.results[0].browser.close_calls == 1
    assert not manager.sessions.has_session(sid)

    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.close_browser(sid))
    assert exc.value.code is ErrorCode.SESSION_NOT_FOUND


def test_close_failure_is_classified_and_session_kept(manager, launcher, event_loop):
    sid = run(event_loop, manager.launch_browser())["session_id"]
    manager.sessions.get_session(sid).browser.close_error = RuntimeError("invalid session id")

    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.close_browser(sid))
    assert exc.value.code is ErrorCode.SESSION_NOT_FOUND
    assert manager.sessions.has_session(sid)
    assert not manager.sessions.is_cleaning_up(sid)


def test_page_lifecycle(manager, event_loop):
    launched = run(event_loop, manager.launch_browser())
    sid, first = launched["session_id"], launched["page_id"]

    second = run(event_loop, manager.new_page(sid))["page_id"]
    assert manager.sessions.get_active_page_id(sid) == second

    manager.switch_page(sid, first)
    pages = run(event_loop, manager.list_pages(sid))
    assert [(p["id"], p["is_active"]) for p in pages] == [(first, True), (second, False)]

    out = run(event_loop, manager.close_page(sid, first))
    assert out["active_page_id"] == second
    assert manager.sessions.get_page_ids(sid) == [second]


def test_navigate_active_page_and_report_info(manager, event_loop):
    sid = run(event_loop, manager.launch_browser())["session_id"]
    out = run(event_loop, manager.navigate(sid, "https://example.com/"))
    assert out["url"] == "https://example.com/"
    assert out["title"] == "Title of https://example.com/"

    info = run(event_loop, manager.page_info(sid))
    assert info["url"] == "https://example.com/"
    assert info["is_active"] is True


def test_navigate_retries_transient_failures(manager, event_loop):
    launched = run(event_loop, manager.launch_browser())
    sid, pid = launched["session_id"], launched["page_id"]
    page = manager.sessions.get_page(sid, pid)
    page.goto_errors = [RuntimeError("net::ERR_CONNECTION_REFUSED")]

    manager.config = ServerConfig(retry_attempts=2)
    out = run(event_loop, manager.navigate(sid, "https://example.com/", timeout_secs=5))
    assert out["url"] == "https://example.com/"
    assert page.goto_calls == [("https://example.com/", 5), ("https://example.com/", 5)]


@pytest.mark.parametrize("url", ["file:///etc/passwd", "javascript:alert(1)", "example.com", ""])
def test_validate_url_rejects_non_http(url):
    with pytest.raises(BrowserToolError) as exc:
        validate_url(url)
    assert exc.value.code is ErrorCode.INVALID_URL


def test_activity_is_updated_by_page_operations(event_loop):
    clock = FakeClock()
    manager = BrowserManager(ServerConfig(), launcher=FakeLauncher(), sessions=SessionManager(clock=clock))

    sid = run(event_loop, manager.launch_browser())["session_id"]
    clock.advance(100)
    run(event_loop, manager.page_info(sid))
    assert manager.sessions.get_session(sid).metadata.last_activity == 1_100.0


def test_console_capture_round_trip(manager, event_loop):
    launched = run(event_loop, manager.launch_browser())
    sid, pid = launched["session_id"], launched["page_id"]

    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.get_console_messages(sid))
    assert exc.value.code is ErrorCode.VALIDATION_FAILED

    manager.start_console_capture(sid, types=["error"])
    page = manager.sessions.get_page(sid, pid)
    page.console = [
        {"level": "SEVERE", "message": "Uncaught TypeError", "timestamp": 0},
        {"level": "INFO", "message": "ignored", "timestamp": 0},
    ]
    out = run(event_loop, manager.get_console_messages(sid, clear=True))
    assert out["count"] == 1
    assert out["messages"][0]["text"] == "Uncaught TypeError"

    run(event_loop, manager.close_page(sid, pid))
    assert len(manager.console) == 0


def test_expired_sessions_drop_console_state(event_loop):
    clock = FakeClock()
    manager = BrowserManager(
        ServerConfig(session_timeout_secs=60), launcher=FakeLauncher(), sessions=SessionManager(clock=clock)
    )

    sid = run(event_loop, manager.launch_browser())["session_id"]
    manager.start_console_capture(sid)
    clock.advance(61)

    result = run(event_loop, manager.cleanup_expired_sessions())
    assert result.cleaned == 1
    assert len(manager.console) == 0
    assert not manager.sessions.has_session(sid)


def test_shutdown_counts_closed_and_failed(manager, event_loop):
    ok = run(event_loop, manager.launch_browser())["session_id"]
    bad = run(event_loop, manager.launch_browser())["session_id"]
    manager.sessions.get_session(bad).browser.close_error = RuntimeError("driver gone")

    result = run(event_loop, manager.shutdown())
    assert result == {"closed_count": 1, "failed_count": 1}
    assert len(manager.sessions) == 0
    assert not manager.sessions.has_session(ok)


def test_shutdown_leaves_session_being_closed_to_its_owner(manager, event_loop):
    sid = run(event_loop, manager.launch_browser())["session_id"]
    browser = manager.sessions.get_session(sid).browser
    browser.close_delay = 0.05

    async def test_logic():
        closing = asyncio.ensure_future(manager.close_browser(sid))
        await asyncio.sleep(0)
        assert manager.sessions.is_cleaning_up(sid)
        result = await manager.shutdown()
        assert manager.sessions.is_cleaning_up(sid)
        await closing
        return result

    result = run(event_loop, test_logic())
    assert result == {"closed_count": 0, "failed_count": 0}
    assert browser.close_calls == 1
    assert not manager.sessions.has_session(sid)
    assert not manager.sessions.is_cleaning_up(sid)


def test_failed_expiry_close_keeps_console_state(event_loop):
    clock = FakeClock()
    manager = BrowserManager(
        ServerConfig(session_timeout_secs=60), launcher=FakeLauncher(), sessions=SessionManager(clock=clock)
    )

    sid = run(event_loop, manager.launch_browser())["session_id"]
    manager.start_console_capture(sid)
    manager.sessions.get_session(sid).browser.close_error = RuntimeError("driver gone")
    clock.advance(61)

    result = run(event_loop, manager.cleanup_expired_sessions())
    assert result.cleaned == 0
    assert manager.sessions.has_session(sid)
    assert len(manager.console) == 1


def test_server_status_includes_rate_limit(manager, event_loop):
    run(event_loop, manager.launch_browser())
    status = manager.get_server_status()
    assert status["active_sessions"] == 1
    assert status["available_slots"] == 1
    assert status["rate_limit"]["remaining"] == 49
    assert status["rate_limit"]["allowed"] is True


def test_first_page_failure_closes_browser(event_loop):
    launcher = FakeLauncher()
    manager = BrowserManager(ServerConfig(), launcher=launcher)

    async def broken_new_page():
        raise RuntimeError("NoSuchWindowException: target window already closed")

    original_launch = launcher.__call__

    async def launch_with_broken_context(opts):
        result = await original_launch(opts)
        result.context.new_page = broken_new_page
        return result

    manager._launcher = launch_with_broken_context
    with pytest.raises(BrowserToolError) as exc:
        run(event_loop, manager.launch_browser())
    assert exc.value.code is ErrorCode.PAGE_NOT_FOUND
    assert len(manager.sessions) == 0
    assert launcher.results[0].browser.close_calls == 1
