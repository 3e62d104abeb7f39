import asyncio

import pytest

from evm_reader.config.client_config import ClientConfig
from evm_reader.core.network.transport import Endpoint
from evm_reader.utils.rate_limiter import MultiRateLimiter, SlidingWindowRateLimiter


def max_in_any_window(timestamps, window=1.0):
    """Largest number of timestamps inside any trailing (t - window, t] interval"""
    return max(sum(1 for s in timestamps if t - window < s <= t) for t in timestamps)


@pytest.mark.asyncio
async def test_eleventh_acquire_waits_for_window(clock):
    limiter = SlidingWindowRateLimiter(10, clock=clock, sleep=clock.sleep)
    start = clock()

    stamps = [await limiter.acquire() for _ in range(15)]

    assert stamps[:10] == [start] * 10
    assert stamps[10] >= start + 1.0
    assert max_in_any_window(stamps) <= 10


@pytest.mark.asyncio
async def test_concurrent_acquires_never_share_a_slot(clock):
    limiter = SlidingWindowRateLimiter(10, clock=clock, sleep=clock.sleep)

    stamps = await asyncio.gather(*(limiter.acquire() for _ in range(25)))

    assert len(stamps) == 25
    assert max_in_any_window(sorted(stamps)) <= 10
    assert sorted(stamps)[10] >= sorted(stamps)[0] + 1.0
    assert sorted(stamps)[20] >= sorted(stamps)[0] + 2.0


@pytest.mark.asyncio
async def test_slots_free_up_as_window_slides(clock):
    limiter = SlidingWindowRateLimiter(2, clock=clock, sleep=clock.sleep)
    await limiter.acquire()
    clock.now += 0.6
    await limiter.acquire()
    clock.now += 0.5
    # First stamp is now older than the window
    assert limiter.in_window == 1
    await limiter.acquire()
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_real_clock_waits():
    limiter = SlidingWindowRateLimiter(2, window=0.05)
    loop = asyncio.get_running_loop()
    started = loop.time()
    for _ in range(3):
        await limiter.acquire()
    assert loop.time() - started >= 0.04


def test_rejects_zero_limit():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(0)


def test_first_registration_wins(clock):
    limiters = MultiRateLimiter(clock=clock, sleep=clock.sleep)
    first = limiters.get("https://a.example", 5)
    again = limiters.get("https://a.example", 50)
    assert again is first
    assert again.limit == 5
    assert "https://a.example" in limiters
    assert "https://b.example" not in limiters


def test_registry_shares_limiter_per_url_across_configs(registry):
    endpoint = Endpoint("https://node.example/rpc")
    slow = registry.transport(endpoint, ClientConfig(rate_limit_per_second=5))
    fast = registry.transport(endpoint, ClientConfig(rate_limit_per_second=50, retry_count=0))
    other = registry.transport(Endpoint("https://other.example/rpc"), ClientConfig())

    assert slow is not fast
    assert slow._limiter is fast._limiter
    assert fast._limiter.limit == 5
    assert other._limiter is not slow._limiter


def test_registry_reuses_transport_for_same_configuration(registry):
    a = registry.transport(Endpoint("https://node.example", {"k": "v"}), ClientConfig())
    b = registry.transport(Endpoint("https://node.example", {"k": "v"}), ClientConfig())
    c = registry.transport(Endpoint("https://node.example", {"k": "other"}), ClientConfig())
    assert a is b
    assert c is not a
    assert c._limiter is a._limiter


@pytest.mark.asyncio
async def test_keyed_acquire_uses_one_budget_per_key(clock):
    limiters = MultiRateLimiter(clock=clock, sleep=clock.sleep)
    for _ in range(3):
        await limiters.acquire("https://a.example", 2)
    await limiters.acquire("https://b.example", 2)
    assert clock.sleeps == [1.0]
