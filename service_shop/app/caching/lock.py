"""
Distributed mutual exclusion built on the key-value store.

A lock is a key written with set-if-absent and a short TTL. The value is a
random owner token; release and extension only touch the key while it still
holds that token, so a holder whose lock already expired cannot remove a lock
taken over by someone else. The TTL bounds how long a crashed holder blocks.
"""

import secrets
from typing import Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .store import KeyValueStore


class LockLease:
    """A held lock. Usable as an async context manager that releases on exit."""

    def __init__(self, lock: "DistributedLock", key: str, token: str):
        self._lock = lock
        self.key = key
        self.token = token
        self.released = False

    async def release(self) -> bool:
        """Release the lock if this lease still owns it."""
        if self.released:
            return False
        self.released = True
        return await self._lock.release(self.key, self.token)

    async def extend(self, ttl_seconds: Optional[float] = None) -> bool:
        """Push the lock's expiry out while this lease still owns it."""
        if self.released:
            return False
        return await self._lock.extend(self.key, self.token, ttl_seconds)

    async def __aenter__(self) -> "LockLease":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


class DistributedLock:
    """Short-lived mutex over a key namespace in a shared store."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float = 10,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("shop.cache.lock")

    async def try_acquire(self, key: str) -> Optional[LockLease]:
        """Take the lock without waiting. Returns ``None`` if someone holds it."""
        token = secrets.token_hex(16)
        acquired = await self.store.set_if_absent(key, token, self.ttl_seconds)
        if self.metrics:
            self.metrics.increment_counter(
                "cache_lock_attempts_total", result="acquired" if acquired else "contended"
            )
        if not acquired:
            self.logger.debug("Lock busy", lock_key=key)
            return None

        self.logger.debug("Lock acquired", lock_key=key, ttl_seconds=self.ttl_seconds)
        return LockLease(self, key, token)

    async def release(self, key: str, token: str) -> bool:
        released = await self.store.delete_if_equals(key, token)
        if not released:
            # Expired and possibly re-taken by another holder; leave it alone.
            self.logger.warning("Lock no longer owned at release", lock_key=key)
        return released

    async def extend(self, key: str, token: str, ttl_seconds: Optional[float] = None) -> bool:
        return await self.store.expire_if_equals(key, token, ttl_seconds or self.ttl_seconds)
