#!/usr/bin/env python3
"""
Drop cached list pages for one or more listing entities.

Run after bulk imports or manual database edits that bypass the listings
service write path, so readers stop seeing pre-edit pages before their TTL
runs out.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Dict, List

from service_listings.app.cache.redis_cache import CacheService
from service_listings.app.finder.entities import ENTITIES, get_entity
from service_listings.app.finder.keys import CacheKeyDeriver


async def invalidate(
    *,
    redis_url: str,
    namespace: str,
    entities: List[str],
    dry_run: bool,
) -> Dict[str, int]:
    """Invalidate each entity and return removed (or matched) key counts."""
    cache = CacheService(redis_url, enabled=True)
    keys = CacheKeyDeriver(namespace)
    summary: Dict[str, int] = {}

    await cache.start()
    try:
        for name in entities:
            entity = get_entity(name)
            prefix = keys.prefix(entity)
            if dry_run:
                summary[entity.name] = len(await cache.keys_with_prefix(prefix))
            else:
                summary[entity.name] = await cache.delete_by_prefix(prefix)
    finally:
        await cache.stop()

    return summary


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Invalidate cached listing pages in Redis.")
    parser.add_argument("entities", nargs="*", default=sorted(ENTITIES), help="Entities to invalidate (default: all)")
    parser.add_argument("--redis-url", default=os.getenv("LISTINGS_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--namespace", default=os.getenv("LISTINGS_CACHE_NAMESPACE", "listings"), help="Cache key namespace")
    parser.add_argument("--dry-run", action="store_true", help="Count matching keys without deleting them")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        summary = asyncio.run(
            invalidate(
                redis_url=args.redis_url,
                namespace=args.namespace,
                entities=args.entities,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-invalidate] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[cache-invalidate] DRY RUN - no keys deleted")

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
