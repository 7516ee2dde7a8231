"""
Shop service for the Shop Cache Access Layer.
"""

from typing import Dict, Optional

from fastapi import Body, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .caching import CacheClient, RebuildScheduler, RedisKeyValueStore
from .persistence.postgres import PostgreSQLShopRepository
from .shops.models import Result, ShopUpdateRequest
from .shops.service import ShopQueryService, ShopQueryStrategy


class ShopService(BaseService):
    """Shop service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("shop", 8081, config)

        cache_settings = self.config.cache
        self.store = RedisKeyValueStore(self.config.redis_url)
        self.repository = PostgreSQLShopRepository(self.config.postgres_dsn)
        self.scheduler = RebuildScheduler(
            pool_size=cache_settings.rebuild_pool_size,
            queue_size=cache_settings.rebuild_queue_size,
            metrics=self.metrics,
        )
        self.cache = CacheClient(
            self.store,
            cache_settings,
            scheduler=self.scheduler,
            metrics=self.metrics,
        )
        self.shops = ShopQueryService(self.repository, self.cache, cache_settings)

        self._setup_shop_routes()

    def _setup_shop_routes(self):
        """Set up shop-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "shop",
                "message": "Shop Cache Access Layer - Shop Service",
                "version": "1.0.0",
                "capabilities": ["pass_through", "mutex", "logical_expire"]
            }

        @self.app.get("/shop/{shop_id}", response_model=Result)
        async def query_shop_by_id(
            shop_id: int,
            strategy: ShopQueryStrategy = Query(ShopQueryStrategy.PASS_THROUGH),
        ):
            """Get a shop by id through the cache."""
            return await self.shops.query_shop_by_id(shop_id, strategy)

        @self.app.put("/shop", response_model=Result)
        async def update_shop(request: ShopUpdateRequest = Body(...)):
            """Update a shop and invalidate its cache entry."""
            return await self.shops.update_shop(request)

        @self.app.get("/shop-type/list", response_model=Result)
        async def query_type_list():
            """List shop types."""
            return await self.shops.query_type_list()

        @self.app.post("/shop/{shop_id}/warm", response_model=Result)
        async def warm_shop(shop_id: int, expire_seconds: Optional[float] = Query(None, gt=0)):
            """Pre-warm a logical-expiry cache entry for a hot shop."""
            return await self.shops.warm_shop(shop_id, expire_seconds)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check Redis and PostgreSQL."""
        return {
            "redis": "ok" if await self.store.health_check() else "error",
            "postgres": "ok" if await self.repository.health_check() else "error",
        }

    async def start(self):
        """Start shop service components."""
        await self.store.start()
        await self.repository.start()
        await self.scheduler.start()
        self.logger.info("Shop service started")

    async def stop(self):
        """Stop shop service components."""
        await self.scheduler.stop()
        await self.repository.stop()
        await self.store.stop()
        self.logger.info("Shop service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create shop service application."""
    service = ShopService(config)
    return service.app


if __name__ == "__main__":
    service = ShopService()
    service.run()
