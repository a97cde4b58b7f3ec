"""Tests for the in-memory and Redis-backed sliding window throttles."""

from __future__ import annotations

import time

import fakeredis
import pytest

from account_identity.security.rate_limiter import SlidingWindowRateLimiter
from account_identity.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


class ManualTime:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_memory_limiter_reports_wait_until_window_slides():
    now = ManualTime()
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, time_source=now)

    assert limiter.acquire("login:10.0.0.1") == 0.0
    now.value += 10
    assert limiter.acquire("login:10.0.0.1") == 0.0
    now.value += 5
    assert limiter.acquire("login:10.0.0.1") == pytest.approx(45.0)

    now.value += 45
    assert limiter.acquire("login:10.0.0.1") == 0.0


def test_memory_limiter_keys_are_independent_and_resettable():
    now = ManualTime()
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, time_source=now)

    assert limiter.acquire("login:10.0.0.1") == 0.0
    assert limiter.acquire("login:10.0.0.2") == 0.0
    assert limiter.acquire("login:10.0.0.1") > 0

    limiter.reset("login:10.0.0.1")
    assert limiter.acquire("login:10.0.0.1") == 0.0


def test_redis_rate_limiter_allows_within_threshold(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=3, window_seconds=1, key_prefix="test"
    )
    key = "login:203.0.113.7"
    assert limiter.acquire(key) == 0.0
    assert limiter.acquire(key) == 0.0
    assert limiter.acquire(key) == 0.0


def test_redis_rate_limiter_blocks_excess(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=1, key_prefix="test"
    )
    key = "login:203.0.113.7"
    assert limiter.acquire(key) == 0.0
    assert limiter.acquire(key) == 0.0
    wait = limiter.acquire(key)
    assert 0 < wait <= 1.0


def test_redis_rate_limiter_expires_entries(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=1, key_prefix="test"
    )
    key = "register:203.0.113.7"
    assert limiter.acquire(key) == 0.0
    assert limiter.acquire(key) > 0
    time.sleep(1.1)
    assert limiter.acquire(key) == 0.0


def test_redis_rate_limiter_reset_clears_window(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=60, key_prefix="test"
    )
    key = "login:198.51.100.2"
    assert limiter.acquire(key) == 0.0
    assert limiter.acquire(key) > 0

    limiter.reset(key)

    assert limiter.acquire(key) == 0.0
