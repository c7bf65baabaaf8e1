"""Tests for the sliding-window rate limiter."""

import pytest

from snapback.domain.rate_limiter import RateLimiter


def test_window_admits_max_then_rejects() -> None:
    limiter = RateLimiter(max_snapshots=4, window_ms=60_000)
    for ts in (0, 10, 20, 30):
        assert limiter.record_snapshot(ts) is True

    assert limiter.record_snapshot(40) is False
    assert limiter.get_count(40) == 4
    assert limiter.timestamps == (0, 10, 20, 30)

    assert limiter.record_snapshot(60_001) is True
    assert limiter.timestamps == (10, 20, 30, 60_001)


def test_status_reports_wait_time_until_oldest_expires() -> None:
    limiter = RateLimiter(max_snapshots=2, window_ms=1_000)
    limiter.record_snapshot(100)
    limiter.record_snapshot(400)

    status = limiter.get_status(500)
    assert status.can_snapshot is False
    assert status.remaining == 0
    assert status.wait_time_ms == 600

    assert limiter.get_wait_time(900) == 200
    assert limiter.can_snapshot(1_401) is True


def test_reset_clears_history() -> None:
    limiter = RateLimiter(max_snapshots=1)
    limiter.record_snapshot(5)
    limiter.reset()
    assert limiter.get_remaining(6) == 1


@pytest.mark.parametrize("kwargs", [{"max_snapshots": 0}, {"window_ms": 0}])
def test_rejects_non_positive_limits(kwargs) -> None:
    with pytest.raises(ValueError):
        RateLimiter(**kwargs)
