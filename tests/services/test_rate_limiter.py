"""Token bucket tests with an injected clock."""

from __future__ import annotations

import asyncio

from certanchor.services.rate_limiter import InMemoryRateLimiter, RateLimitConfig

CONFIG = RateLimitConfig(capacity=3, refill_rate=1.0)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_burst_up_to_capacity_then_denied() -> None:
    limiter = InMemoryRateLimiter(clock=FakeClock())
    results = [asyncio.run(limiter.check("ip:1.2.3.4", CONFIG)) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[-1].retry_after > 0


def test_tokens_refill_over_time() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    for _ in range(3):
        asyncio.run(limiter.check("k", CONFIG))
    assert not asyncio.run(limiter.check("k", CONFIG)).allowed

    clock.now += 1.0
    assert asyncio.run(limiter.check("k", CONFIG)).allowed


def test_keys_have_independent_buckets() -> None:
    limiter = InMemoryRateLimiter(clock=FakeClock())
    for _ in range(3):
        asyncio.run(limiter.check("user:a", CONFIG))
    assert asyncio.run(limiter.check("user:b", CONFIG)).allowed


def test_reset_restores_full_bucket() -> None:
    limiter = InMemoryRateLimiter(clock=FakeClock())
    for _ in range(4):
        asyncio.run(limiter.check("k", CONFIG))
    asyncio.run(limiter.reset("k"))
    assert asyncio.run(limiter.check("k", CONFIG)).remaining == 2


def test_idle_ttl_covers_full_refill() -> None:
    assert RateLimitConfig(capacity=30, refill_rate=0.5).idle_ttl_seconds == 120
