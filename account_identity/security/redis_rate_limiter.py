"""Redis-backed sliding window throttle shared by every service replica."""

from __future__ import annotations

import time
import uuid
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisSlidingWindowRateLimiter:
    """Distributed sliding window limiter implemented with Redis sorted sets.

    Each admitted request is a member of a sorted set scored by its arrival
    time in milliseconds. The Lua script trims, counts and inserts in one
    round trip; a denied request gets back the milliseconds until the oldest
    member leaves the window.
    """

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])
    local member = ARGV[4]

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_requests then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        return math.max(1, tonumber(oldest[2]) + window_ms - now_ms)
    end
    redis.call('ZADD', key, now_ms, member)
    redis.call('PEXPIRE', key, window_ms)
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "throttle"
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def acquire(self, key: str) -> float:
        """Count a request against ``key``; returns seconds to wait, ``0.0`` when admitted."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        member = f"{now_ms}:{uuid.uuid4().hex}"
        try:
            wait_ms = self._script(
                keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms, member]
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                wait_ms = self._acquire_without_lua(redis_key, now_ms, member)
            else:
                raise
        return int(wait_ms) / 1000.0

    def reset(self, key: str) -> None:
        self._client.delete(f"{self._key_prefix}:{key}")

    def _acquire_without_lua(self, redis_key: str, now_ms: int, member: str) -> int:
        """Same algorithm as the Lua script for servers without scripting support."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
            oldest_ms = int(oldest[0][1]) if oldest else now_ms
            return max(1, oldest_ms + self._window_ms - now_ms)
        self._client.zadd(redis_key, {member: now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return 0
