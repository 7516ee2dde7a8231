"""
Shop queries and updates routed through the cache access layer.
"""

import asyncio
from enum import Enum
from typing import Dict, Iterable, List, Optional

from shared.config import CacheSettings
from shared.errors import ValidationError
from shared.logging import get_logger
from ..caching import CacheClient, CacheResult, LookupStatus
from ..persistence.postgres import PostgreSQLShopRepository
from .models import Result, Shop, ShopType, ShopUpdateRequest


SHOP_NOT_FOUND = "Shop does not exist"
SHOP_UNAVAILABLE = "Shop is temporarily unavailable, please retry"
SHOP_TYPES_NOT_FOUND = "Shop types do not exist"


class ShopQueryStrategy(str, Enum):
    """Cache read strategy used for a shop lookup."""
    PASS_THROUGH = "pass_through"
    MUTEX = "mutex"
    LOGICAL_EXPIRE = "logical_expire"


def _decode_shop_types(items) -> List[ShopType]:
    return [ShopType.model_validate(item) for item in items]


class ShopQueryService:
    """Shop reads go through the cache; writes hit the database and invalidate."""

    def __init__(self, repository: PostgreSQLShopRepository, cache: CacheClient, settings: CacheSettings):
        self.repository = repository
        self.cache = cache
        self.settings = settings
        self.logger = get_logger("shop.service")

    async def get_shop(
        self,
        shop_id: int,
        strategy: ShopQueryStrategy = ShopQueryStrategy.PASS_THROUGH,
    ) -> CacheResult[Shop]:
        if strategy is ShopQueryStrategy.MUTEX:
            return await self.cache.query_with_mutex(
                self.settings.shop_key_prefix,
                shop_id,
                Shop.model_validate,
                self.settings.shop_lock_prefix,
                self.repository.get_shop,
                self.settings.shop_ttl_seconds,
            )
        if strategy is ShopQueryStrategy.LOGICAL_EXPIRE:
            return await self.cache.query_with_logical_expire(
                self.settings.shop_key_prefix,
                shop_id,
                Shop.model_validate,
                self.settings.shop_lock_prefix,
                self.repository.get_shop,
                self.settings.shop_ttl_seconds,
            )
        return await self.cache.query_with_pass_through(
            self.settings.shop_key_prefix,
            shop_id,
            Shop.model_validate,
            self.repository.get_shop,
            self.settings.shop_ttl_seconds,
        )

    async def query_shop_by_id(
        self,
        shop_id: int,
        strategy: ShopQueryStrategy = ShopQueryStrategy.PASS_THROUGH,
    ) -> Result:
        result = await self.get_shop(shop_id, strategy)
        if result.found:
            return Result.ok(result.value)
        if result.status is LookupStatus.UNAVAILABLE:
            return Result.fail(SHOP_UNAVAILABLE)
        return Result.fail(SHOP_NOT_FOUND)

    async def update_shop(self, request: ShopUpdateRequest) -> Result:
        """Write to the database first, then drop the cached shop."""
        if request.id is None:
            raise ValidationError("Shop id must not be empty")

        changes = request.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
        updated = await self.repository.update_shop(request.id, changes)
        if not updated:
            return Result.fail(SHOP_NOT_FOUND)

        await self.cache.invalidate(self.settings.shop_key_prefix, request.id)
        return Result.ok()

    async def query_type_list(self) -> Result:
        """Shop types ordered by ``sort``, cached as one list."""

        async def load_types(_: str) -> Optional[List[ShopType]]:
            types = await self.repository.list_shop_types()
            return types or None

        result = await self.cache.query_with_pass_through(
            self.settings.shop_type_key,
            "",
            _decode_shop_types,
            load_types,
            self.settings.shop_type_ttl_seconds,
        )
        if not result.found:
            return Result.fail(SHOP_TYPES_NOT_FOUND)
        return Result.ok(result.value, total=len(result.value))

    async def warm_shop(self, shop_id: int, expire_seconds: Optional[float] = None) -> Result:
        """Load a shop from the database into a logical-expiry entry."""
        shop = await self.repository.get_shop(shop_id)
        if shop is None:
            return Result.fail(SHOP_NOT_FOUND)

        ttl_seconds = expire_seconds or self.settings.shop_ttl_seconds
        await self.cache.set_with_logical_expire(f"{self.settings.shop_key_prefix}{shop_id}", shop, ttl_seconds)
        self.logger.info("Shop cache warmed", shop_id=shop_id, expire_seconds=ttl_seconds)
        return Result.ok(shop)

    async def warm_shops(
        self,
        shop_ids: Iterable[int],
        expire_seconds: Optional[float] = None,
        concurrency: int = 5,
    ) -> Dict[str, List[int]]:
        """Warm several shops, at most ``concurrency`` at a time."""
        semaphore = asyncio.Semaphore(max(1, concurrency))
        summary: Dict[str, List[int]] = {"warmed": [], "missing": []}

        async def warm_one(shop_id: int):
            async with semaphore:
                result = await self.warm_shop(shop_id, expire_seconds)
            summary["warmed" if result.success else "missing"].append(shop_id)

        await asyncio.gather(*(warm_one(shop_id) for shop_id in shop_ids))
        summary["warmed"].sort()
        summary["missing"].sort()
        return summary
