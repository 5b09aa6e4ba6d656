"""
Redis caching layer for the Listings service.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import redis.asyncio as redis

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.logging import get_logger

T = TypeVar("T")

_GLOB_SPECIAL = "\\*?[]"


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so ``value`` matches literally."""
    return "".join(f"\\{char}" if char in _GLOB_SPECIAL else char for char in value)


class CacheService:
    """Redis key-value cache with per-entry TTL.

    Every operation degrades to a miss (or a falsy result) when the cache is
    disabled, unreachable, or returns data that cannot be decoded. Nothing
    raised by Redis ever reaches the caller.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        enabled: bool = True,
        default_ttl: int = 300,
        client: Optional[redis.Redis] = None,
        breaker: Optional[CircuitBreaker] = None,
        scan_batch_size: int = 500
    ):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self.scan_batch_size = scan_batch_size
        self.logger = get_logger("listings.cache.redis")
        self.breaker = breaker or CircuitBreaker(name="redis")

        self.redis: Optional[redis.Redis] = client
        self._owns_client = client is None
        self._enabled = enabled and (client is not None or bool(redis_url))

    @property
    def enabled(self) -> bool:
        """Check if the cache is enabled and has a client."""
        return self._enabled and self.redis is not None

    async def start(self):
        """Start the Redis cache."""
        if not self._enabled:
            self.logger.info("Redis cache disabled")
            return

        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

        try:
            await self.redis.ping()
            self.logger.info("Redis cache started")
        except Exception as e:
            # Keep the client: calls fail open until Redis comes back
            self.logger.warning("Redis cache unreachable at startup", error=str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis is not None and self._owns_client:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def _execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        return await self.breaker.call(func, *args, **kwargs)

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value, or None on miss or any failure."""
        if not self.enabled:
            return None

        try:
            raw = await self._execute(self.redis.get, key)
        except CircuitBreakerOpenException:
            return None
        except Exception as e:
            self.logger.error("Error reading cache", key=key, error=str(e))
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (ValueError, TypeError) as e:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Cache a JSON-serialisable value with a TTL."""
        if not self.enabled:
            return False

        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            self.logger.error("Value is not JSON serialisable", key=key, error=str(e))
            return False

        try:
            await self._execute(self.redis.setex, key, ttl, serialized)
        except CircuitBreakerOpenException:
            return False
        except Exception as e:
            self.logger.error("Error writing cache", key=key, error=str(e))
            return False

        self.logger.debug("Cached value", key=key, ttl=ttl)
        return True

    async def delete(self, key: str) -> bool:
        """Delete a single key."""
        if not self.enabled:
            return False

        try:
            removed = await self._execute(self.redis.delete, key)
        except CircuitBreakerOpenException:
            return False
        except Exception as e:
            self.logger.error("Error deleting cache key", key=key, error=str(e))
            return False

        return removed > 0

    async def exists(self, key: str) -> bool:
        """Check if a key exists."""
        if not self.enabled:
            return False

        try:
            return await self._execute(self.redis.exists, key) > 0
        except CircuitBreakerOpenException:
            return False
        except Exception as e:
            self.logger.error("Error checking cache key", key=key, error=str(e))
            return False

    async def _scan_keys(self, pattern: str) -> List[str]:
        return [key async for key in self.redis.scan_iter(match=pattern, count=self.scan_batch_size)]

    async def keys_with_prefix(self, prefix: str) -> List[str]:
        """List keys starting with ``prefix`` without removing them."""
        if not self.enabled or not prefix:
            return []

        try:
            return await self._execute(self._scan_keys, f"{escape_glob(prefix)}*")
        except CircuitBreakerOpenException:
            return []
        except Exception as e:
            self.logger.error("Error listing cache keys", prefix=prefix, error=str(e))
            return []

    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; return how many were removed."""
        if not self.enabled:
            return 0

        if not prefix:
            self.logger.warning("Refusing to delete cache keys with an empty prefix")
            return 0

        pattern = f"{escape_glob(prefix)}*"
        removed = 0
        try:
            keys = await self._execute(self._scan_keys, pattern)
            for start in range(0, len(keys), self.scan_batch_size):
                batch = keys[start:start + self.scan_batch_size]
                removed += await self._execute(self.redis.delete, *batch)
        except CircuitBreakerOpenException:
            return removed
        except Exception as e:
            self.logger.error("Error deleting cache prefix", prefix=prefix, removed=removed, error=str(e))
            return removed

        if removed:
            self.logger.info("Invalidated cache prefix", prefix=prefix, count=removed)
        return removed

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None
    ) -> Any:
        """Cache-aside helper: return the cached value or fetch and cache it."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await fetcher()
        await self.set(key, value, ttl_seconds)
        return value

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        stats: Dict[str, Any] = {
            "enabled": self.enabled,
            "default_ttl": self.default_ttl,
            "circuit_breaker": self.breaker.get_state(),
        }
        if not self.enabled:
            return stats

        try:
            info = await self._execute(self.redis.info)
        except Exception as e:
            self.logger.error("Error getting cache stats", error=str(e))
            stats["error"] = str(e)
            return stats

        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        stats.update({
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "connected_clients": info.get("connected_clients"),
            "keyspace_hits": hits,
            "keyspace_misses": misses,
            "hit_rate": hits / (hits + misses) if hits + misses else 0.0,
        })
        return stats

    async def health_check(self) -> bool:
        """Check Redis health."""
        if not self.enabled:
            return False
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
