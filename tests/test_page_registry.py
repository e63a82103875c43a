# tests/test_page_registry.py
import asyncio
import pytest

from mcp_browser_sessions.constants import CLOSED_PAGE_TITLE, CLOSED_PAGE_URL
from mcp_browser_sessions.errors import BrowserToolError, ErrorCode
from mcp_browser_sessions.sessions import PageRegistry

from _utils import FakePage


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


def test_removing_active_page_promotes_remaining_page():
    reg = PageRegistry()
    reg.add("a", FakePage())
    reg.add("b", FakePage(), set_active=False)
    assert reg.get_active_id() == "a"

    assert reg.remove("a") is True
    assert reg.get_active_id() == "b"


def test_active_id_never_points_at_removed_page():
    reg = PageRegistry()
    for pid in ("p1", "p2", "p3", "p4"):
        reg.add(pid, FakePage())
    reg.set_active("p2")

    while len(reg) > 0:
        active = reg.get_active_id()
        reg.remove(active)
        if len(reg):
            assert reg.get_active_id() in reg.get_ids()
            assert reg.get_active_id() != active
    assert reg.get_active_id() is None


def test_first_page_is_active_even_when_not_requested():
    reg = PageRegistry()
    reg.add("only", FakePage(), set_active=False)
    assert reg.get_active_id() == "only"


def test_removing_inactive_page_keeps_active():
    reg = PageRegistry()
    reg.add("a", FakePage())
    reg.add("b", FakePage())
    assert reg.get_active_id() == "b"
    reg.remove("a")
    assert reg.get_active_id() == "b"


def test_remove_unknown_returns_false():
    reg = PageRegistry()
    assert reg.remove("ghost") is False


def test_get_and_set_active_unknown_raise_page_not_found():
    reg = PageRegistry()
    with pytest.raises(BrowserToolError) as exc:
        reg.get("missing")
    assert exc.value.code is ErrorCode.PAGE_NOT_FOUND
    assert "missing" in exc.value.message

    with pytest.raises(BrowserToolError) as exc:
        reg.set_active("missing")
    assert exc.value.code is ErrorCode.PAGE_NOT_FOUND
    assert exc.value.message.startswith("Cannot set active page")


def test_callbacks_fire_on_remove_and_clear():
    reg = PageRegistry()
    removed, active = [], []
    reg.on_page_removed = lambda pid, _page: removed.append(pid)
    reg.on_active_changed = active.append

    reg.add("a", FakePage())
    reg.add("b", FakePage())
    reg.remove("b")
    reg.clear()

    assert removed == ["b", "a"]
    assert active == ["a", "b", "a", None]
    assert len(reg) == 0


def test_failing_removed_callback_does_not_break_remove():
    reg = PageRegistry()

    def boom(_pid, _page):
        raise RuntimeError("callback failed")

    reg.on_page_removed = boom
    reg.add("a", FakePage())
    assert reg.remove("a") is True
    assert "a" not in reg


def test_summaries_keep_going_past_a_dead_page(event_loop):
    reg = PageRegistry()
    reg.add("ok-1", FakePage("https://example.com/", "Example"))
    reg.add("dead", FakePage(fail_with=RuntimeError("target window already closed")))
    reg.add("ok-2", FakePage("https://example.org/", "Org"))
    reg.set_active("ok-1")

    async def test_logic():
        return await reg.get_summaries()

    summaries = event_loop.run_until_complete(test_logic())
    assert [s.id for s in summaries] == ["ok-1", "dead", "ok-2"]
    assert summaries[0].url == "https://example.com/"
    assert summaries[0].is_active is True
    assert summaries[1].url == CLOSED_PAGE_URL
    assert summaries[1].title == CLOSED_PAGE_TITLE
    assert summaries[2].to_dict() == {
        "id": "ok-2", "url": "https://example.org/", "title": "Org", "is_active": False,
    }
