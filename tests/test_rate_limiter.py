"""Rate limiter tests.

Covers the sliding window bookkeeping:
- requests beyond the limit are rejected and not recorded
- the window slides as time passes
- remaining count and reset time reflect only in-window requests
"""

from paperbag.security.rate_limiter import ANONYMOUS, RateLimiter, RateLimiters


def test_allows_up_to_max_requests_then_rejects(clock):
    limiter = RateLimiter(window_ms=60_000, max_requests=3, clock=clock)

    assert [limiter.is_allowed("user-1") for _ in range(4)] == [True, True, True, False]
    assert limiter.get_remaining_requests("user-1") == 0


def test_rejected_requests_are_not_recorded(clock):
    """A burst of rejected calls must not push the reset time forward."""
    start = clock.now
    limiter = RateLimiter(window_ms=1_000, max_requests=1, clock=clock)

    assert limiter.is_allowed("user-1")
    clock.advance(500)
    for _ in range(10):
        assert not limiter.is_allowed("user-1")

    assert limiter.get_reset_time("user-1") == start + 1_000
    clock.advance(500)
    assert limiter.is_allowed("user-1")


def test_window_slides(clock):
    limiter = RateLimiter(window_ms=60_000, max_requests=2, clock=clock)

    limiter.is_allowed("user-1")
    clock.advance(30_000)
    limiter.is_allowed("user-1")
    assert not limiter.is_allowed("user-1")

    # First request leaves the window, one slot frees up
    clock.advance(30_000)
    assert limiter.get_remaining_requests("user-1") == 1
    assert limiter.is_allowed("user-1")
    assert not limiter.is_allowed("user-1")


def test_identifiers_are_independent(clock):
    limiter = RateLimiter(window_ms=60_000, max_requests=1, clock=clock)

    assert limiter.is_allowed("user-1")
    assert limiter.is_allowed("user-2")
    assert limiter.is_allowed(ANONYMOUS)
    assert not limiter.is_allowed("user-1")


def test_remaining_and_reset_time_for_unknown_identifier(clock):
    limiter = RateLimiter(window_ms=60_000, max_requests=5, clock=clock)

    assert limiter.get_remaining_requests("nobody") == 5
    assert limiter.get_reset_time("nobody") == clock.now


def test_reset_time_is_oldest_request_plus_window(clock):
    start = clock.now
    limiter = RateLimiter(window_ms=10_000, max_requests=5, clock=clock)

    limiter.is_allowed("user-1")
    clock.advance(4_000)
    limiter.is_allowed("user-1")

    assert limiter.get_reset_time("user-1") == start + 10_000


def test_rate_limiters_from_settings(settings, clock):
    limiters = RateLimiters.from_settings(settings, clock=clock)

    assert (limiters.upload.window_ms, limiters.upload.max_requests) == (60_000, 5)
    assert (limiters.processing.window_ms, limiters.processing.max_requests) == (300_000, 3)
    assert (limiters.general.window_ms, limiters.general.max_requests) == (60_000, 20)

    limiters.processing.is_allowed("user-1")
    status = limiters.status_for("user-1")
    assert status["processing"] == {"remaining": 2, "reset_time": clock.now + 300_000}
    assert status["upload"] == {"remaining": 5, "reset_time": clock.now}
    assert status["general"]["remaining"] == 20
