"""
Shop cache access layer.

Cache-aside reads in front of the shop database with three protections:
absent markers against penetration, a distributed rebuild lock against
stampedes, and logical expiry with background rebuilds for hot keys.
"""

from .cache_client import CacheClient, CacheResult, LookupStatus
from .codec import ABSENT_SENTINEL, JsonCodec, LogicalExpiryEnvelope
from .lock import DistributedLock, LockLease
from .scheduler import RebuildScheduler
from .store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

__all__ = [
    "ABSENT_SENTINEL",
    "CacheClient",
    "CacheResult",
    "DistributedLock",
    "InMemoryKeyValueStore",
    "JsonCodec",
    "KeyValueStore",
    "LockLease",
    "LogicalExpiryEnvelope",
    "LookupStatus",
    "RebuildScheduler",
    "RedisKeyValueStore",
]
