#!/usr/bin/env python3
"""
Pre-warm logical-expiry cache entries for hot shops.

Logical-expiry reads never fall back to the database for keys that were never
written, so hot shops have to be loaded ahead of time. This helper loads the
given shops from PostgreSQL and writes them to Redis with a logical expiry.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from shared.config import CacheSettings
from service_shop.app.caching import CacheClient, RedisKeyValueStore
from service_shop.app.persistence.postgres import PostgreSQLShopRepository
from service_shop.app.shops.service import ShopQueryService


async def warm(
    *,
    redis_url: str,
    postgres_dsn: str,
    shop_ids: List[int],
    expire_seconds: Optional[float],
    concurrency: int,
    dry_run: bool,
) -> dict:
    """Execute cache warming and return the summary."""
    settings = CacheSettings()
    store = RedisKeyValueStore(redis_url)
    repository = PostgreSQLShopRepository(postgres_dsn)
    cache = CacheClient(store, settings)
    service = ShopQueryService(repository, cache, settings)

    if dry_run:
        cache.set_with_logical_expire = _noop_async  # type: ignore[assignment]
    else:
        await store.start()

    await repository.start()
    try:
        return await service.warm_shops(shop_ids, expire_seconds, concurrency)
    finally:
        await repository.stop()
        await store.stop()


async def _noop_async(*args, **kwargs):  # type: ignore[no-untyped-def]
    return None


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm Redis logical-expiry entries for hot shops.")
    parser.add_argument("shop_ids", nargs="+", type=int, help="Shop ids to warm")
    parser.add_argument("--redis-url", default=os.getenv("SHOPCACHE_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--postgres-dsn", default=os.getenv("SHOPCACHE_POSTGRES_DSN", "postgres://localhost:5432/shop"), help="PostgreSQL DSN")
    parser.add_argument("--expire-seconds", type=float, default=None, help="Logical expiry window (defaults to the shop TTL)")
    parser.add_argument("--concurrency", type=int, default=5, help="Concurrent warm operations")
    parser.add_argument("--dry-run", action="store_true", help="Do not write to Redis; report what would be warmed")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        summary = asyncio.run(
            warm(
                redis_url=args.redis_url,
                postgres_dsn=args.postgres_dsn,
                shop_ids=args.shop_ids,
                expire_seconds=args.expire_seconds,
                concurrency=args.concurrency,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[shop-cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[shop-cache-warm] DRY RUN - no Redis writes executed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
