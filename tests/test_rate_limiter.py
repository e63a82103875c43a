# tests/test_rate_limiter.py
import pytest

from mcp_browser_sessions.errors import BrowserToolError, ErrorCode
from mcp_browser_sessions.sessions import RateLimiter

from _utils import FakeClock


def test_three_calls_pass_then_fourth_fails_then_window_reopens():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=3, window_secs=1.0, clock=clock)

    for _ in range(3):
        limiter.check_limit()

    clock.advance(0.5)
    with pytest.raises(BrowserToolError) as exc:
        limiter.check_limit()
    assert exc.value.code is ErrorCode.RATE_LIMIT_EXCEEDED
    assert "3 requests per 1 seconds" in exc.value.message

    clock.advance(0.6)  # 1.1s after the first three
    limiter.check_limit()


def test_sub_second_window_is_reported_as_configured():
    limiter = RateLimiter(max_requests=1, window_secs=0.25, clock=FakeClock())
    limiter.check_limit()
    with pytest.raises(BrowserToolError) as exc:
        limiter.check_limit()
    assert "1 requests per 0.25 seconds" in exc.value.message
    assert exc.value.details["window_secs"] == 0.25


def test_rejected_call_does_not_consume_a_slot():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_secs=10, clock=clock)
    limiter.check_limit()

    for _ in range(5):
        with pytest.raises(BrowserToolError):
            limiter.check_limit()
    assert limiter.tracked == 1


def test_sliding_window_frees_slots_one_by_one():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_secs=10, clock=clock)
    limiter.check_limit()
    clock.advance(4)
    limiter.check_limit()
    assert not limiter.can_accept()

    clock.advance(6.5)  # first entry is now older than the window
    assert limiter.can_accept()
    limiter.check_limit()
    assert not limiter.can_accept()


def test_tracked_count_never_exceeds_max_tracked():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1_000, window_secs=3_600, max_tracked=25, clock=clock)
    for _ in range(500):
        limiter.check_limit()
        clock.advance(0.01)
        assert limiter.tracked <= 25


def test_get_status_reports_remaining_and_reset_ms():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_secs=60, clock=clock)
    status = limiter.get_status()
    assert status.allowed is True
    assert status.remaining == 2
    assert status.reset_ms == 0

    limiter.check_limit()
    clock.advance(15)
    limiter.check_limit()
    status = limiter.get_status()
    assert status.allowed is False
    assert status.remaining == 0
    assert status.reset_ms == 45_000


def test_clock_going_backwards_keeps_log_sorted():
    clock = FakeClock(start=100.0)
    limiter = RateLimiter(max_requests=10, window_secs=5, clock=clock)
    limiter.check_limit()
    clock.now = 90.0
    limiter.check_limit()
    clock.now = 100.0
    limiter.check_limit()

    # Every entry is clamped to t=100, so all expire together.
    clock.now = 105.01
    assert limiter.get_status().remaining == 10


def test_reset_clears_history():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_secs=60, clock=clock)
    limiter.check_limit()
    limiter.reset()
    assert limiter.tracked == 0
    limiter.consume_token()


@pytest.mark.parametrize("kwargs", [
    {"max_requests": 0, "window_secs": 1},
    {"max_requests": 1, "window_secs": 0},
])
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        RateLimiter(**kwargs)
