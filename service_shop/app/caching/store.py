"""
Key-value store capability used by the cache access layer.

``KeyValueStore`` is the minimal single-key surface the cache client, lock and
rebuild jobs depend on. ``RedisKeyValueStore`` backs it with ``redis.asyncio``;
``InMemoryKeyValueStore`` keeps everything in-process for local runs and tests.
"""

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheStoreUnavailableError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception


# Compare-and-delete / compare-and-expire keep lock ownership checks atomic.
_DELETE_IF_EQUALS = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

_EXPIRE_IF_EQUALS = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
end
return 0
"""


class KeyValueStore(Protocol):
    """Single-key, atomic operations over string keys and values."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def expire(self, key: str, ttl_seconds: float) -> bool: ...

    async def delete_if_equals(self, key: str, value: str) -> bool: ...

    async def expire_if_equals(self, key: str, value: str, ttl_seconds: float) -> bool: ...


def _to_millis(ttl_seconds: float) -> int:
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
    return max(1, int(ttl_seconds * 1000))


class RedisKeyValueStore:
    """Redis-backed key-value store."""

    def __init__(self, redis_url: str, connect_retry: Optional[RetryConfig] = None):
        self.redis_url = redis_url
        self.logger = get_logger("shop.cache.store")
        self.connect_retry = connect_retry or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
        self.redis: Optional[redis.Redis] = None
        self._delete_if_equals = None
        self._expire_if_equals = None

    async def start(self):
        """Connect to Redis, retrying the initial ping."""
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        self._delete_if_equals = self.redis.register_script(_DELETE_IF_EQUALS)
        self._expire_if_equals = self.redis.register_script(_EXPIRE_IF_EQUALS)

        @retry_on_exception((RedisError,), self.connect_retry)
        async def ping():
            return await self.redis.ping()

        try:
            await ping()
        except RetryError as e:
            self.logger.error("Failed to start Redis store", error=str(e.last_exception))
            raise CacheStoreUnavailableError(str(e.last_exception)) from e

        self.logger.info("Redis store started", redis_url=self.redis_url)

    async def stop(self):
        """Close the Redis connection."""
        if self.redis:
            await self.redis.close()
            self.redis = None
            self.logger.info("Redis store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheStoreUnavailableError("Redis store not started")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client().get(key)
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "get", "key": key}) from e

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        px = _to_millis(ttl_seconds) if ttl_seconds is not None else None
        try:
            await self._client().set(key, value, px=px)
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "set", "key": key}) from e

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        try:
            return bool(await self._client().set(key, value, nx=True, px=_to_millis(ttl_seconds)))
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "set_if_absent", "key": key}) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client().delete(key))
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "delete", "key": key}) from e

    async def expire(self, key: str, ttl_seconds: float) -> bool:
        try:
            return bool(await self._client().pexpire(key, _to_millis(ttl_seconds)))
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "expire", "key": key}) from e

    async def delete_if_equals(self, key: str, value: str) -> bool:
        self._client()
        try:
            return bool(await self._delete_if_equals(keys=[key], args=[value]))
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "delete_if_equals", "key": key}) from e

    async def expire_if_equals(self, key: str, value: str, ttl_seconds: float) -> bool:
        self._client()
        try:
            return bool(await self._expire_if_equals(keys=[key], args=[value, _to_millis(ttl_seconds)]))
        except RedisError as e:
            raise CacheStoreUnavailableError(str(e), {"operation": "expire_if_equals", "key": key}) from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except (RedisError, CacheStoreUnavailableError):
            return False


class InMemoryKeyValueStore:
    """In-process store with per-key TTLs.

    Operations never suspend between reading and writing a key, so each one is
    atomic with respect to other tasks on the same event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _deadline(self, ttl_seconds: Optional[float]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        _to_millis(ttl_seconds)
        return self._clock() + ttl_seconds

    async def start(self):
        return None

    async def stop(self):
        self._data.clear()

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        self._data[key] = (value, self._deadline(ttl_seconds))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        if self._live(key) is not None:
            return False
        self._data[key] = (value, self._deadline(ttl_seconds))
        return True

    async def delete(self, key: str) -> bool:
        return self._live(key) is not None and self._data.pop(key, None) is not None

    async def expire(self, key: str, ttl_seconds: float) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._deadline(ttl_seconds))
        return True

    async def delete_if_equals(self, key: str, value: str) -> bool:
        entry = self._live(key)
        if entry is None or entry[0] != value:
            return False
        del self._data[key]
        return True

    async def expire_if_equals(self, key: str, value: str, ttl_seconds: float) -> bool:
        entry = self._live(key)
        if entry is None or entry[0] != value:
            return False
        self._data[key] = (value, self._deadline(ttl_seconds))
        return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires; ``None`` for missing or persistent keys."""
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()

    async def health_check(self) -> bool:
        return True
