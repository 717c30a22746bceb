"""Unit tests for rate limiting."""

import pytest

from src.exceptions import RateLimitError
from src.middleware.rate_limit import RateLimiter

NOW = 1_731_322_800.0


@pytest.fixture
def rate_limiter() -> RateLimiter:
    """Create a fresh RateLimiter with a 60 second window."""
    return RateLimiter(window_seconds=60)


def test_rate_limit_allows_under_limit(rate_limiter: RateLimiter) -> None:
    """Test that requests under limit are allowed."""
    for i in range(10):
        rate_limiter.check_rate_limit("203.0.113.9", 10, now=NOW + i)


def test_rate_limit_blocks_over_limit(rate_limiter: RateLimiter) -> None:
    """Test that requests over limit are blocked."""
    for _ in range(5):
        rate_limiter.check_rate_limit("203.0.113.9", 5, now=NOW)

    with pytest.raises(RateLimitError) as exc_info:
        rate_limiter.check_rate_limit("203.0.113.9", 5, now=NOW + 10)

    error = exc_info.value
    assert error.status_code == 429
    assert error.error_code == "RATE_LIMIT_EXCEEDED"
    assert error.retry_after == 50
    assert error.details["limit"] == 5


def test_rate_limit_window_slides(rate_limiter: RateLimiter) -> None:
    """Test that old requests leave the window one by one."""
    rate_limiter.check_rate_limit("203.0.113.9", 2, now=NOW)
    rate_limiter.check_rate_limit("203.0.113.9", 2, now=NOW + 30)

    with pytest.raises(RateLimitError):
        rate_limiter.check_rate_limit("203.0.113.9", 2, now=NOW + 59)

    # The first request has left the window, the second has not
    rate_limiter.check_rate_limit("203.0.113.9", 2, now=NOW + 60)
    with pytest.raises(RateLimitError):
        rate_limiter.check_rate_limit("203.0.113.9", 2, now=NOW + 61)


def test_rejected_requests_are_not_counted(rate_limiter: RateLimiter) -> None:
    """Test that blocked requests do not extend the block."""
    rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW)
    for i in range(1, 5):
        with pytest.raises(RateLimitError):
            rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW + i)

    rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW + 60)


def test_retry_after_is_at_least_one(rate_limiter: RateLimiter) -> None:
    """Test the minimum Retry-After."""
    rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW)

    with pytest.raises(RateLimitError) as exc_info:
        rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW + 59.9)

    assert exc_info.value.retry_after == 1


def test_rate_limit_separate_keys(rate_limiter: RateLimiter) -> None:
    """Test that different clients have independent limits."""
    for _ in range(3):
        rate_limiter.check_rate_limit("203.0.113.9", 3, now=NOW)
    with pytest.raises(RateLimitError):
        rate_limiter.check_rate_limit("203.0.113.9", 3, now=NOW)

    for _ in range(3):
        rate_limiter.check_rate_limit("198.51.100.23", 3, now=NOW)


def test_reset_key(rate_limiter: RateLimiter) -> None:
    """Test that resetting a key clears its window."""
    rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW)

    rate_limiter.reset_key("203.0.113.9")
    rate_limiter.reset_key("unknown")

    rate_limiter.check_rate_limit("203.0.113.9", 1, now=NOW)


def test_clear_all(rate_limiter: RateLimiter) -> None:
    """Test that clear_all resets every key."""
    rate_limiter.check_rate_limit("a", 1, now=NOW)
    rate_limiter.check_rate_limit("b", 1, now=NOW)

    rate_limiter.clear_all()

    rate_limiter.check_rate_limit("a", 1, now=NOW)
    rate_limiter.check_rate_limit("b", 1, now=NOW)


def test_expired_keys_are_swept(rate_limiter: RateLimiter) -> None:
    """Test that one-off clients do not accumulate once their window expires."""
    for i in range(500):
        rate_limiter.check_rate_limit(f"client-{i}", 10, now=NOW + i * 0.01)
    assert len(rate_limiter) == 500

    rate_limiter.check_rate_limit("client-late", 10, now=NOW + 120)

    assert len(rate_limiter) == 1


def test_active_keys_survive_sweep(rate_limiter: RateLimiter) -> None:
    """Test that the sweep keeps clients with requests inside the window."""
    rate_limiter.check_rate_limit("idle", 2, now=NOW)
    rate_limiter.check_rate_limit("active", 2, now=NOW + 50)
    rate_limiter.check_rate_limit("active", 2, now=NOW + 70)

    assert len(rate_limiter) == 1
    with pytest.raises(RateLimitError):
        rate_limiter.check_rate_limit("active", 2, now=NOW + 75)
