"""
Cache-aside client with penetration and stampede protection.

Three read strategies are offered, all keyed by ``key_prefix + str(entity_id)``
and backed by a caller-supplied ``fetch(entity_id)`` against the source of
truth:

* ``query_with_pass_through`` caches "not found" as a short-lived absent
  marker so lookups for nonexistent ids stop reaching the source.
* ``query_with_mutex`` lets a single caller per key rebuild a missing entry
  under a distributed lock while the others back off and re-read.
* ``query_with_logical_expire`` serves entries stored without a physical TTL,
  returning stale data immediately and rebuilding it on the worker pool.

Writes to the source must be followed by ``invalidate``.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from shared.config import CacheSettings
from shared.errors import CacheDecodeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, calculate_delay
from .codec import ABSENT_SENTINEL, Decoder, JsonCodec, LogicalExpiryEnvelope, is_absent_marker
from .lock import DistributedLock
from .scheduler import RebuildScheduler
from .store import KeyValueStore

T = TypeVar("T")
ID = TypeVar("ID")

Fetch = Callable[[ID], Union[Optional[T], Awaitable[Optional[T]]]]


class LookupStatus(str, Enum):
    """How a lookup was resolved."""
    HIT = "hit"                  # fresh value from the cache
    LOADED = "loaded"            # fetched from the source and cached
    STALE = "stale"              # logically expired value, rebuild handled elsewhere
    ABSENT = "absent"            # source confirmed there is no such record
    MISS = "miss"                # not cached; strategy does not consult the source
    UNAVAILABLE = "unavailable"  # lock retries exhausted, try again later


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Outcome of a cache lookup."""

    status: LookupStatus
    value: Optional[T] = None

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def confirmed_absent(self) -> bool:
        return self.status is LookupStatus.ABSENT


class CacheClient:
    """Reads through the shared cache to a slower source of truth."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[CacheSettings] = None,
        *,
        scheduler: Optional[RebuildScheduler] = None,
        metrics: Optional[MetricsCollector] = None,
        codec: Optional[JsonCodec] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.settings = settings or CacheSettings()
        self.metrics = metrics
        self.codec = codec or JsonCodec()
        self.clock = clock
        self.logger = get_logger("shop.cache.client")

        self.lock = DistributedLock(store, self.settings.lock_ttl_seconds, metrics=metrics)
        self.scheduler = scheduler or RebuildScheduler(
            pool_size=self.settings.rebuild_pool_size,
            queue_size=self.settings.rebuild_queue_size,
            metrics=metrics,
        )
        self.retry = RetryConfig.fixed(self.settings.max_retries, self.settings.retry_backoff_seconds)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Cache ``value`` under ``key`` with a physical TTL."""
        await self.store.set(key, self.codec.encode(value), ttl_seconds)

    async def set_with_logical_expire(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Cache ``value`` without a physical TTL, stale after ``ttl_seconds``."""
        expire_at = self._now() + timedelta(seconds=ttl_seconds)
        await self.store.set(key, self.codec.encode_envelope(value, expire_at))

    async def set_absent(self, key: str) -> None:
        """Record that the source has no value for ``key``."""
        await self.store.set(key, ABSENT_SENTINEL, self.settings.null_ttl_seconds)

    async def invalidate(self, key_prefix: str, entity_id: Any) -> bool:
        """Drop the cached entry after the source record changed."""
        key = f"{key_prefix}{entity_id}"
        deleted = await self.store.delete(key)
        self.logger.info("Cache invalidated", key=key, existed=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Read strategies
    # ------------------------------------------------------------------

    async def query_with_pass_through(
        self,
        key_prefix: str,
        entity_id: ID,
        decode: Decoder[T],
        fetch: Fetch,
        ttl_seconds: float,
    ) -> CacheResult[T]:
        """Read through the cache, caching "not found" to absorb penetration."""
        key = f"{key_prefix}{entity_id}"

        cached = await self._read(key, decode)
        if cached is not None:
            return self._done("pass_through", cached)

        result = await self._load(key, entity_id, fetch, ttl_seconds)
        return self._done("pass_through", result)

    async def query_with_mutex(
        self,
        key_prefix: str,
        entity_id: ID,
        decode: Decoder[T],
        lock_prefix: str,
        fetch: Fetch,
        ttl_seconds: float,
    ) -> CacheResult[T]:
        """Read through the cache, letting one caller per key rebuild a miss.

        Callers that lose the lock sleep and re-read; after ``max_retries``
        attempts they get ``UNAVAILABLE`` rather than an error.
        """
        key = f"{key_prefix}{entity_id}"
        lock_key = f"{lock_prefix}{entity_id}"

        for attempt in range(1, self.retry.max_attempts + 1):
            cached = await self._read(key, decode)
            if cached is not None:
                return self._done("mutex", cached)

            lease = await self.lock.try_acquire(lock_key)
            if lease is not None:
                async with lease:
                    # The previous holder may have filled the key just before releasing.
                    cached = await self._read(key, decode)
                    if cached is not None:
                        return self._done("mutex", cached)
                    result = await self._load(key, entity_id, fetch, ttl_seconds)
                return self._done("mutex", result)

            delay = calculate_delay(attempt, self.retry)
            self.logger.debug("Rebuild lock busy, backing off", key=key, attempt=attempt, delay=delay)
            await asyncio.sleep(delay)

        self.logger.warning("Rebuild lock retries exhausted", key=key, attempts=self.retry.max_attempts)
        return self._done("mutex", CacheResult(LookupStatus.UNAVAILABLE))

    async def query_with_logical_expire(
        self,
        key_prefix: str,
        entity_id: ID,
        decode: Decoder[T],
        lock_prefix: str,
        fetch: Fetch,
        ttl_seconds: float,
    ) -> CacheResult[T]:
        """Serve pre-warmed entries, refreshing expired ones in the background.

        Never waits on ``fetch``. Keys that were never warmed return ``MISS``.
        """
        key = f"{key_prefix}{entity_id}"

        raw = await self.store.get(key)
        if raw is None:
            return self._done("logical_expire", CacheResult(LookupStatus.MISS))
        if is_absent_marker(raw):
            return self._done("logical_expire", CacheResult(LookupStatus.ABSENT))

        stale = None
        try:
            envelope = self.codec.decode_envelope(raw, decode)
            if not envelope.is_expired(self._now()):
                return self._done("logical_expire", self._fresh(envelope))
            stale = envelope.data
        except CacheDecodeError as e:
            self.logger.warning("Discarding undecodable envelope", key=key, error=e.message)

        lock_key = f"{lock_prefix}{entity_id}"
        lease = await self.lock.try_acquire(lock_key)
        if lease is not None:
            fresh = await self._read_fresh_envelope(key, decode)
            if fresh is not None:
                await lease.release()
                return self._done("logical_expire", self._fresh(fresh))

            async def rebuild():
                async with lease:
                    value = await self._fetch(entity_id, fetch)
                    # A missing record still gets an envelope so the key is never evicted.
                    await self.set_with_logical_expire(key, value, ttl_seconds)
                    self.logger.info("Cache rebuilt", key=key, found=value is not None)

            try:
                await self.scheduler.submit(rebuild, name=key)
            except BaseException:
                await lease.release()
                raise

        if stale is None:
            return self._done("logical_expire", CacheResult(LookupStatus.MISS))
        return self._done("logical_expire", CacheResult(LookupStatus.STALE, stale))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _read(self, key: str, decode: Decoder[T]) -> Optional[CacheResult[T]]:
        """Cached outcome for ``key``, or ``None`` when the source must be asked."""
        raw = await self.store.get(key)
        if raw is None:
            return None
        if is_absent_marker(raw):
            return CacheResult(LookupStatus.ABSENT)
        try:
            return CacheResult(LookupStatus.HIT, self.codec.decode(raw, decode))
        except CacheDecodeError as e:
            self.logger.warning("Treating undecodable cache entry as a miss", key=key, error=e.message)
            return None

    async def _read_fresh_envelope(self, key: str, decode: Decoder[T]) -> Optional[LogicalExpiryEnvelope[T]]:
        raw = await self.store.get(key)
        if raw is None or is_absent_marker(raw):
            return None
        try:
            envelope = self.codec.decode_envelope(raw, decode)
        except CacheDecodeError:
            return None
        if envelope.is_expired(self._now()):
            return None
        return envelope

    @staticmethod
    def _fresh(envelope: LogicalExpiryEnvelope[T]) -> CacheResult[T]:
        if envelope.data is None:
            return CacheResult(LookupStatus.ABSENT)
        return CacheResult(LookupStatus.HIT, envelope.data)

    async def _load(self, key: str, entity_id: Any, fetch: Fetch, ttl_seconds: float) -> CacheResult:
        value = await self._fetch(entity_id, fetch)
        if value is None:
            await self.set_absent(key)
            self.logger.debug("Cached absent marker", key=key, ttl_seconds=self.settings.null_ttl_seconds)
            return CacheResult(LookupStatus.ABSENT)

        await self.set(key, value, ttl_seconds)
        return CacheResult(LookupStatus.LOADED, value)

    async def _fetch(self, entity_id: Any, fetch: Fetch) -> Any:
        start_time = time.perf_counter()
        try:
            value = fetch(entity_id)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            self._record_fetch("error", start_time)
            self.logger.error("Source fetch failed", entity_id=str(entity_id), error=str(e))
            raise

        self._record_fetch("found" if value is not None else "not_found", start_time)
        return value

    def _record_fetch(self, outcome: str, start_time: float):
        if self.metrics:
            self.metrics.increment_counter("source_fetch_total", outcome=outcome)
            self.metrics.observe_histogram("source_fetch_duration_seconds", time.perf_counter() - start_time)

    def _done(self, strategy: str, result: CacheResult) -> CacheResult:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", strategy=strategy, status=result.status.value)
        return result

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)
