"""
Cache package for the Listings service.

Provides a Redis-backed key-value cache that the finder uses for cache-aside
list results. It fails open: a broken or absent Redis only costs hit rate.
"""

from .redis_cache import CacheService, escape_glob

__all__ = ["CacheService", "escape_glob"]
