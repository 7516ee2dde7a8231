"""
Shared fixtures for Shop Service tests.
"""

import pytest

from shared.config import CacheSettings
from shared.metrics import MetricsCollector
from service_shop.app.caching import CacheClient, InMemoryKeyValueStore, RebuildScheduler


class FakeClock:
    """Manually advanced clock, usable for both monotonic and wall time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def settings():
    return CacheSettings(
        null_ttl_seconds=120,
        lock_ttl_seconds=10,
        max_retries=10,
        retry_backoff_seconds=0.05,
        rebuild_pool_size=2,
        rebuild_queue_size=10,
    )


@pytest.fixture
def metrics():
    return MetricsCollector("shop")


@pytest.fixture
def scheduler(metrics):
    return RebuildScheduler(pool_size=2, queue_size=10, metrics=metrics)


@pytest.fixture
def cache_client(store, settings, scheduler, metrics, clock):
    return CacheClient(store, settings, scheduler=scheduler, metrics=metrics, clock=clock)
