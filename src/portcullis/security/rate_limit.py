"""Sliding-window rate-limit stores.

A window is an ordered set of request timestamps per key. On every hit,
timestamps at or before ``now - window_seconds`` are evicted; the hit is
admitted only if fewer than ``max_requests`` remain, and then recorded.

``MemoryRateLimitStore`` keeps windows in this process and is only
meaningful for a single long-lived process. ``RedisRateLimitStore``
keeps them in Redis so every worker and instance shares one window.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

from portcullis.errors import ConfigurationError

logger = logging.getLogger("portcullis.security.rate_limit")


class RateLimitStore(Protocol):
    """Storage contract for sliding windows."""

    def hit(self, key: str, max_requests: int, window_seconds: float, now: float) -> bool:
        """Record a request for *key* if admitted; return whether it was."""
        ...

    def reset(self, key: str) -> None:
        """Forget every timestamp recorded for *key*."""
        ...


class MemoryRateLimitStore:
    """Process-local sliding windows guarded by one lock.

    At most once every ``sweep_interval`` seconds a hit also drops every
    key whose window has fully drained, so one-off clients do not
    accumulate.
    """

    __slots__ = ("_expires", "_last_sweep", "_lock", "_sweep_interval", "_windows")

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}
        self._expires: dict[str, float] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep: float | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str, max_requests: int, window_seconds: float, now: float) -> bool:
        cutoff = now - window_seconds
        with self._lock:
            self._maybe_sweep(now)
            window = self._windows.get(key)
            if window is not None:
                while window and window[0] <= cutoff:
                    window.popleft()
            if len(window or ()) >= max_requests:
                return False
            if window is None:
                window = self._windows[key] = deque()
            window.append(now)
            self._expires[key] = now + window_seconds
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)
            self._expires.pop(key, None)

    def count(self, key: str) -> int:
        """Timestamps currently recorded for *key* (no eviction)."""
        with self._lock:
            return len(self._windows.get(key, ()))

    def _maybe_sweep(self, now: float) -> None:
        # Caller holds the lock.
        if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        expired = [key for key, expires in self._expires.items() if expires <= now]
        for key in expired:
            del self._windows[key]
            del self._expires[key]
        if expired:
            logger.debug("Swept %d idle rate-limit windows", len(expired))


@dataclass(frozen=True, slots=True)
class RedisConfig:
    """Connection settings for the Redis-backed store."""

    url: str = "redis://localhost:6379/0"
    prefix: str = "portcullis:ratelimit"
    socket_timeout: float = 1.0


class RedisRateLimitStore:
    """Sliding windows kept in Redis sorted sets.

    Each hit runs one MULTI pipeline: evict old members, add this hit,
    count, refresh the key's expiry. When the count exceeds the limit the
    hit just added is removed again and the request is denied.

    Usage::

        store = RedisRateLimitStore(RedisConfig(url="redis://cache:6379/0"))

    A pre-built client may be passed instead (``client=``).
    """

    __slots__ = ("_client", "_config")

    def __init__(self, config: RedisConfig | None = None, *, client: Any = None) -> None:
        self._config = config or RedisConfig()
        if client is None:
            try:
                import redis
            except ImportError:
                msg = (
                    "RedisRateLimitStore requires the 'redis' package. "
                    "Install it with: pip install portcullis[redis]"
                )
                raise ConfigurationError(msg) from None
            client = redis.Redis.from_url(
                self._config.url,
                socket_timeout=self._config.socket_timeout,
                decode_responses=True,
            )
        self._client = client

    def _key(self, key: str) -> str:
        return f"{self._config.prefix}:{key}"

    def hit(self, key: str, max_requests: int, window_seconds: float, now: float) -> bool:
        redis_key = self._key(key)
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
        pipe.zadd(redis_key, {member: now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, max(1, int(window_seconds) + 1))
        results = pipe.execute()

        count = int(results[2])
        if count > max_requests:
            self._client.zrem(redis_key, member)
            logger.debug("Rate limit denied for %s (%d/%d)", key, count - 1, max_requests)
            return False
        return True

    def reset(self, key: str) -> None:
        self._client.delete(self._key(key))
