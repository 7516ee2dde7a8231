"""
PostgreSQL persistence layer for the Shop Service.
"""

from typing import Any, Dict, List, Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import AccessLayerException, ExternalServiceError
from ..shops.models import Shop, ShopType


_SHOP_COLUMNS = (
    "id", "name", "type_id", "images", "area", "address", "x", "y",
    "avg_price", "sold", "comments", "score", "open_hours",
)


class PostgreSQLShopRepository:
    """PostgreSQL access to shops and shop types."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("shop.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise AccessLayerException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise ExternalServiceError("postgres", "Persistence layer not started")
        return self.pool

    async def _create_tables(self):
        """Create database tables."""
        async with self._require_pool().acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS shop_types (
                    id BIGINT PRIMARY KEY,
                    name VARCHAR(32) NOT NULL,
                    icon VARCHAR(255),
                    sort INTEGER NOT NULL DEFAULT 0,
                    create_time TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    update_time TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS shops (
                    id BIGSERIAL PRIMARY KEY,
                    name VARCHAR(128) NOT NULL,
                    type_id BIGINT NOT NULL,
                    images VARCHAR(1024) NOT NULL DEFAULT '',
                    area VARCHAR(128),
                    address VARCHAR(255) NOT NULL DEFAULT '',
                    x DOUBLE PRECISION NOT NULL DEFAULT 0,
                    y DOUBLE PRECISION NOT NULL DEFAULT 0,
                    avg_price BIGINT,
                    sold INTEGER NOT NULL DEFAULT 0,
                    comments INTEGER NOT NULL DEFAULT 0,
                    score INTEGER NOT NULL DEFAULT 0,
                    open_hours VARCHAR(32),
                    create_time TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    update_time TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_shops_type ON shops(type_id);
            """)

    async def get_shop(self, shop_id: int) -> Optional[Shop]:
        """Load a shop by id; ``None`` when it does not exist."""
        try:
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM shops WHERE id = $1", shop_id)
        except asyncpg.PostgresError as e:
            self.logger.error("Error loading shop", shop_id=shop_id, error=str(e))
            raise ExternalServiceError("postgres", str(e)) from e

        return Shop(**dict(row)) if row else None

    async def update_shop(self, shop_id: int, changes: Dict[str, Any]) -> bool:
        """Apply column changes to a shop. Returns ``False`` if the shop is missing."""
        columns = [column for column in changes if column in _SHOP_COLUMNS and column != "id"]
        if not columns:
            return await self.get_shop(shop_id) is not None

        assignments = ", ".join(f"{column} = ${index}" for index, column in enumerate(columns, start=2))
        query = f"UPDATE shops SET {assignments}, update_time = NOW() WHERE id = $1"

        try:
            async with self._require_pool().acquire() as conn:
                status = await conn.execute(query, shop_id, *(changes[column] for column in columns))
        except asyncpg.PostgresError as e:
            self.logger.error("Error updating shop", shop_id=shop_id, error=str(e))
            raise ExternalServiceError("postgres", str(e)) from e

        updated = status.endswith(" 1")
        self.logger.info("Shop updated", shop_id=shop_id, columns=columns, updated=updated)
        return updated

    async def list_shop_types(self) -> List[ShopType]:
        """All shop types ordered by ``sort``."""
        try:
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch("SELECT * FROM shop_types ORDER BY sort ASC")
        except asyncpg.PostgresError as e:
            self.logger.error("Error listing shop types", error=str(e))
            raise ExternalServiceError("postgres", str(e)) from e

        return [ShopType(**dict(row)) for row in rows]

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._require_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False
