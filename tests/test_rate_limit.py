from __future__ import annotations

from pcm_server.backend.utils.rate_limit import KeyedRateLimiter


def test_per_window_allows_count_then_blocks() -> None:
    now = 0.0

    def time_fn() -> float:
        return now

    limiter = KeyedRateLimiter.per_window(3, 60.0, time_fn=time_fn)

    assert [limiter.allow("1.2.3.4") for _ in range(4)] == [True, True, True, False]
    assert limiter.allow("5.6.7.8") is True

    now = 20.0
    assert limiter.allow("1.2.3.4") is True
    assert limiter.allow("1.2.3.4") is False


def test_disabled_limiter_always_allows() -> None:
    limiter = KeyedRateLimiter.per_window(0, 60.0)

    assert limiter.enabled is False
    assert all(limiter.allow("client") for _ in range(100))
    assert limiter.tracked_keys() == 0


def test_refilled_buckets_are_pruned() -> None:
    now = 0.0

    def time_fn() -> float:
        return now

    limiter = KeyedRateLimiter(
        capacity=1.0, refill_per_sec=1.0, time_fn=time_fn, prune_interval_sec=10.0
    )

    assert limiter.allow("old")
    now = 5.0
    assert limiter.allow("recent")
    assert limiter.tracked_keys() == 2

    now = 10.5
    assert limiter.allow("new")
    # "old" and "recent" refilled completely and were dropped; "new" remains.
    assert limiter.tracked_keys() == 1
