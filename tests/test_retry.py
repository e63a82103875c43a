# tests/test_retry.py
import asyncio
import pytest

from mcp_browser_sessions.errors import BrowserToolError, ErrorClassifier, ErrorCode
from mcp_browser_sessions.utils.retry import retry_async


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


def make_flaky(errors, value="done"):
    calls = []

    async def fn():
        calls.append(1)
        if errors:
            raise errors.pop(0)
        return value

    return fn, calls


def test_retries_transient_errors_then_succeeds(event_loop):
    fn, calls = make_flaky([TimeoutError("slow"), RuntimeError("net::ERR_CONNECTION_REFUSED")])
    out = event_loop.run_until_complete(retry_async(fn, retries=2, base_delay=0))
    assert out.result == "done"
    assert out.retries_used == 2
    assert len(calls) == 3


def test_non_retryable_error_is_raised_immediately(event_loop):
    fn, calls = make_flaky([KeyError("bad")])
    with pytest.raises(BrowserToolError) as exc:
        event_loop.run_until_complete(retry_async(fn, retries=5, base_delay=0))
    assert exc.value.code is ErrorCode.INTERNAL_ERROR
    assert isinstance(exc.value.__cause__, KeyError)
    assert len(calls) == 1


def test_gives_up_after_last_attempt_with_typed_error(event_loop):
    fn, calls = make_flaky([TimeoutError("1"), TimeoutError("2"), TimeoutError("3")])
    with pytest.raises(BrowserToolError) as exc:
        event_loop.run_until_complete(retry_async(fn, retries=1, base_delay=0))
    assert exc.value.code is ErrorCode.TIMEOUT_EXCEEDED
    assert len(calls) == 2


def test_typed_error_is_reraised_as_is(event_loop):
    original = BrowserToolError(ErrorCode.SESSION_NOT_FOUND, "gone")
    fn, _ = make_flaky([original])
    with pytest.raises(BrowserToolError) as exc:
        event_loop.run_until_complete(retry_async(fn, retries=3, base_delay=0))
    assert exc.value is original


def test_classifier_overrides_control_retries(event_loop):
    clf = ErrorClassifier(retryable_overrides={ErrorCode.TIMEOUT_EXCEEDED: False})
    fn, calls = make_flaky([TimeoutError("slow")])
    with pytest.raises(BrowserToolError):
        event_loop.run_until_complete(retry_async(fn, retries=3, base_delay=0, classifier=clf))
    assert len(calls) == 1


def test_zero_retries_calls_once(event_loop):
    fn, calls = make_flaky([])
    out = event_loop.run_until_complete(retry_async(fn, retries=0))
    assert out.result == "done"
    assert out.retries_used == 0
    assert len(calls) == 1
