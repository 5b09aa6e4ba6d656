"""
Shared fixtures for Listings service tests.
"""

import fakeredis
import pytest

from service_listings.app.cache.redis_cache import CacheService
from service_listings.app.finder.finder import CachedFinder
from service_listings.app.store.memory import MemoryDocumentStore
from shared.metrics import MetricsCollector
from shared.test_helpers import ListingsDataFactory


@pytest.fixture
def redis_client():
    """In-process Redis with a private keyspace."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def cache(redis_client):
    """CacheService backed by fakeredis."""
    return CacheService(client=redis_client, default_ttl=300)


@pytest.fixture
def store():
    """Store seeded with 45 jobs, 12 blogs and 10 feedback items."""
    return MemoryDocumentStore({
        "jobs": ListingsDataFactory.create_jobs(),
        "blogs": ListingsDataFactory.create_blogs(),
        "feedback": ListingsDataFactory.create_feedback(),
    })


@pytest.fixture
def metrics():
    """Listings metrics on a private registry."""
    return MetricsCollector("listings")


@pytest.fixture
def finder(cache, store, metrics):
    """CachedFinder wired to fakeredis and the seeded store."""
    return CachedFinder(cache, store, ttl_seconds=300, metrics=metrics)
