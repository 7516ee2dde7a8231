"""
Tests for the shop cache warming script.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from service_shop.app.caching import InMemoryKeyValueStore, JsonCodec
from service_shop.app.shops.models import Shop
from scripts.warm_shop_cache import warm


@pytest.fixture
def repository():
    shops = {7: Shop(id=7, name="Lao Sichuan", type_id=1)}
    repository = MagicMock()
    repository.start = AsyncMock()
    repository.stop = AsyncMock()
    repository.get_shop = AsyncMock(side_effect=lambda shop_id: shops.get(shop_id))
    return repository


@pytest.fixture
def store():
    store = InMemoryKeyValueStore()
    store.stop = AsyncMock()
    return store


async def _run(repository, store, dry_run):
    with patch("scripts.warm_shop_cache.PostgreSQLShopRepository", return_value=repository), \
            patch("scripts.warm_shop_cache.RedisKeyValueStore", return_value=store):
        return await warm(
            redis_url="redis://localhost:6379/0",
            postgres_dsn="postgres://localhost/shop",
            shop_ids=[7, 8],
            expire_seconds=60,
            concurrency=2,
            dry_run=dry_run,
        )


@pytest.mark.asyncio
async def test_warm_writes_logical_expiry_entries(repository, store):
    summary = await _run(repository, store, dry_run=False)

    assert summary == {"warmed": [7], "missing": [8]}
    raw = await store.get("cache:shop:7")
    assert set(json.loads(raw)) == {"data", "expireAt"}
    envelope = JsonCodec().decode_envelope(raw, Shop.model_validate)
    assert envelope.data.name == "Lao Sichuan"
    assert await store.get("cache:shop:8") is None
    repository.stop.assert_awaited_once()
    store.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_dry_run_leaves_cache_untouched(repository, store):
    summary = await _run(repository, store, dry_run=True)

    assert summary == {"warmed": [7], "missing": [8]}
    assert await store.get("cache:shop:7") is None
