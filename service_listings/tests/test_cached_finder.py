"""
Unit tests for the cache-aside list finder.
"""

import asyncio
import json

import pytest
from hypothesis import given, settings, strategies as st
from unittest.mock import AsyncMock, MagicMock, patch

from service_listings.app.cache.redis_cache import CacheService
from service_listings.app.finder.entities import BLOGS, FEEDBACK, JOBS
from service_listings.app.finder.finder import CachedFinder
from service_listings.app.finder.models import PageEnvelope
from service_listings.app.store.memory import MemoryDocumentStore
from shared.errors import QueryFailedError, StoreError, ValidationError
from shared.test_helpers import ListingsDataFactory


def _ids(envelope: PageEnvelope):
    return [row["_id"] for row in envelope.data]


class TestPagination:
    """Page arithmetic over the 45 seeded jobs."""

    @pytest.mark.asyncio
    async def test_first_page(self, finder):
        envelope = await finder.execute(JOBS, {})

        assert envelope.total == 45
        assert envelope.page == 1
        assert envelope.limit == 20
        assert _ids(envelope) == [f"job-{i:03d}" for i in range(44, 24, -1)]
        assert envelope.has_next_page is True
        assert envelope.has_prev_page is False

    @pytest.mark.asyncio
    async def test_last_partial_page(self, finder):
        envelope = await finder.execute(JOBS, {"page": "3"})

        assert _ids(envelope) == ["job-004", "job-003", "job-002", "job-001", "job-000"]
        assert envelope.has_next_page is False
        assert envelope.has_prev_page is True

    @pytest.mark.asyncio
    async def test_page_past_end(self, finder):
        envelope = await finder.execute(JOBS, {"page": "10"})

        assert envelope.data == []
        assert envelope.total == 45
        assert envelope.has_next_page is False
        assert envelope.has_prev_page is True

    @pytest.mark.asyncio
    async def test_pages_partition_results(self, finder):
        seen = []
        for page in (1, 2, 3):
            seen.extend(_ids(await finder.execute(JOBS, {"page": page, "limit": 20})))

        assert len(seen) == 45
        assert len(set(seen)) == 45

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, finder):
        envelope = await finder.execute(JOBS, {"limit": "1000"})

        assert envelope.limit == 100
        assert len(envelope.data) == 45
        assert envelope.has_next_page is False


class TestPaginationProperties:
    """Page walks over generated corpora."""

    @settings(max_examples=60, deadline=None)
    @given(size=st.integers(min_value=0, max_value=60), limit=st.integers(min_value=1, max_value=25))
    def test_page_walk_covers_corpus_once(self, size, limit):
        records = ListingsDataFactory.create_feedback(count=size)
        finder = CachedFinder(CacheService(enabled=False), MemoryDocumentStore({"feedback": records}))
        expected = [row["_id"] for row in sorted(records, key=lambda row: row["createdAt"], reverse=True)]

        async def walk():
            pages = []
            page = 1
            while True:
                envelope = await finder.execute(FEEDBACK, {"page": str(page), "limit": str(limit)})
                pages.append(envelope)
                if not envelope.has_next_page:
                    return pages
                page += 1

        pages = asyncio.run(walk())

        assert [row_id for envelope in pages for row_id in _ids(envelope)] == expected
        assert len(pages) == max(1, -(-size // limit))
        for number, envelope in enumerate(pages, start=1):
            assert envelope.page == number
            assert envelope.total == size
            assert len(envelope.data) == max(0, min(limit, size - (number - 1) * limit))
            assert envelope.has_prev_page is (number > 1)
            assert envelope.has_next_page is (number * limit < size)


class TestFiltersAndSorting:
    """Filter and sort behaviour through the finder."""

    @pytest.mark.asyncio
    async def test_keyword_is_case_insensitive(self, finder):
        envelope = await finder.execute(JOBS, {"keyword": "ENGINEER 1"})

        assert envelope.total == 10
        assert all(row["title"].startswith("Engineer 1") for row in envelope.data)

    @pytest.mark.asyncio
    async def test_keyword_is_literal(self, finder):
        envelope = await finder.execute(JOBS, {"keyword": "Engineer 0."})

        assert envelope.total == 0

    @pytest.mark.asyncio
    async def test_location(self, finder):
        envelope = await finder.execute(JOBS, {"location": "york"})

        assert envelope.total == 15

    @pytest.mark.asyncio
    async def test_tags_require_all(self, finder):
        assert (await finder.execute(JOBS, {"tags": "python"})).total == 30
        assert (await finder.execute(JOBS, {"tags": "python,data"})).total == 15

    @pytest.mark.asyncio
    async def test_remote_flag(self, finder):
        envelope = await finder.execute(JOBS, {"isRemote": "true", "limit": "100"})

        assert envelope.total == 15
        assert all(row["isRemote"] for row in envelope.data)

    @pytest.mark.asyncio
    async def test_default_scope_hides_unpublished(self, cache):
        jobs = ListingsDataFactory.create_jobs(5)
        jobs.append({**ListingsDataFactory.create_jobs(1)[0], "_id": "draft-1", "status": "draft"})
        jobs.append({**ListingsDataFactory.create_jobs(1)[0], "_id": "pending-1", "approvalStatus": "pending"})
        finder = CachedFinder(cache, MemoryDocumentStore({"jobs": jobs}))

        assert (await finder.execute(JOBS, {})).total == 5
        assert _ids(await finder.execute(JOBS, {"status": "draft"})) == ["draft-1"]
        assert _ids(await finder.execute(JOBS, {"approvalStatus": "pending"})) == ["pending-1"]

    @pytest.mark.asyncio
    async def test_salary_sort(self, finder):
        envelope = await finder.execute(JOBS, {"sort": "salary_high_to_low", "limit": "3"})

        assert _ids(envelope) == ["job-044", "job-043", "job-042"]

    @pytest.mark.asyncio
    async def test_ties_break_on_id(self, finder):
        envelope = await finder.execute(JOBS, {"sort": "company_a_to_z", "limit": "3"})

        assert _ids(envelope) == ["job-000", "job-003", "job-006"]

    @pytest.mark.asyncio
    async def test_order_override(self, finder):
        envelope = await finder.execute(JOBS, {"sort": "newest_first", "order": "asc", "limit": "2"})

        assert _ids(envelope) == ["job-000", "job-001"]

    @pytest.mark.asyncio
    async def test_blogs_and_feedback(self, finder):
        assert (await finder.execute("blogs", {"tag": "music"})).total == 4
        assert (await finder.execute(BLOGS, {"sort": "most_viewed", "limit": "1"})).data[0]["_id"] == "blog-011"
        assert (await finder.execute(FEEDBACK, {"type": "complaint"})).total == 5
        assert (await finder.execute("feedback", {})).total == 10

    @pytest.mark.asyncio
    async def test_unknown_entity(self, finder):
        with pytest.raises(ValidationError):
            await finder.execute("events", {})


class TestCaching:
    """Cache-aside behaviour."""

    @pytest.mark.asyncio
    async def test_miss_populates_cache(self, finder, redis_client):
        envelope = await finder.execute(JOBS, {"keyword": "engineer"})
        await finder.drain()

        key = finder.keys.derive(JOBS, JOBS.parse({"keyword": "engineer"}))
        cached = json.loads(await redis_client.get(key))
        assert cached == envelope.to_dict()
        assert 0 < await redis_client.ttl(key) <= 300

    @pytest.mark.asyncio
    async def test_hit_skips_store(self, finder, store):
        first = await finder.execute(JOBS, {"page": "2"})
        await finder.drain()

        with patch.object(store, "find", new_callable=AsyncMock) as mock_find, \
                patch.object(store, "count", new_callable=AsyncMock) as mock_count:
            second = await finder.execute(JOBS, {"limit": "20", "page": "2"})

        assert second.to_dict() == first.to_dict()
        mock_find.assert_not_called()
        mock_count.assert_not_called()

    @pytest.mark.asyncio
    async def test_hit_and_miss_serialise_identically(self, finder):
        miss = await finder.execute(BLOGS, {})
        await finder.drain()
        hit = await finder.execute(BLOGS, {})

        assert json.dumps(hit.to_dict(), sort_keys=True) == json.dumps(miss.to_dict(), sort_keys=True)

    @pytest.mark.asyncio
    async def test_metrics(self, finder, metrics):
        await finder.execute(JOBS, {})
        await finder.drain()
        await finder.execute(JOBS, {})

        registry = metrics.registry
        assert registry.get_sample_value("cache_misses_total", {"entity": "job"}) == 1.0
        assert registry.get_sample_value("cache_hits_total", {"entity": "job"}) == 1.0
        assert registry.get_sample_value("store_query_duration_seconds_count", {"entity": "job"}) == 1.0

    @pytest.mark.asyncio
    async def test_finder_without_collector_records_privately(self, store):
        finder = CachedFinder(CacheService(enabled=False), store)

        await finder.execute(BLOGS, {})

        registry = finder.metrics.registry
        assert registry.get_sample_value("cache_misses_total", {"entity": "blog"}) == 1.0
        assert registry.get_sample_value("store_query_duration_seconds_count", {"entity": "blog"}) == 1.0

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_is_a_miss(self, finder, redis_client):
        key = finder.keys.derive(JOBS, JOBS.parse({}))
        await redis_client.set(key, json.dumps({"unexpected": True}))

        envelope = await finder.execute(JOBS, {})
        await finder.drain()

        assert envelope.total == 45
        assert json.loads(await redis_client.get(key))["total"] == 45

    @pytest.mark.asyncio
    async def test_returned_envelope_does_not_alias_cache_write(self, finder, redis_client):
        envelope = await finder.execute(JOBS, {"limit": "1"})
        envelope.data[0]["title"] = "mutated"
        await finder.drain()

        key = finder.keys.derive(JOBS, JOBS.parse({"limit": "1"}))
        assert json.loads(await redis_client.get(key))["data"][0]["title"] == "Engineer 44"

    @pytest.mark.asyncio
    async def test_concurrent_misses_each_query_store(self, store):
        finder = CachedFinder(CacheService(enabled=False), store)

        with patch.object(store, "find", new=AsyncMock(wraps=store.find)) as mock_find:
            first, second = await asyncio.gather(
                finder.execute(JOBS, {}),
                finder.execute(JOBS, {}),
            )

        assert first.to_dict() == second.to_dict()
        assert mock_find.await_count == 2


class TestFailures:
    """Cache and store failure handling."""

    @pytest.mark.asyncio
    async def test_cache_failure_falls_through_to_store(self, store):
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock(return_value=False)
        finder = CachedFinder(cache, store)

        envelope = await finder.execute(JOBS, {})
        await finder.drain()

        assert envelope.total == 45
        cache.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_redis_serves_every_request_from_store(self, store):
        error = ConnectionError("redis down")
        client = MagicMock()
        client.get = AsyncMock(side_effect=error)
        client.setex = AsyncMock(side_effect=error)
        client.delete = AsyncMock(side_effect=error)

        async def broken_scan(*args, **kwargs):
            raise error
            yield  # pragma: no cover

        client.scan_iter = broken_scan
        cache = CacheService(client=client)
        finder = CachedFinder(cache, store)

        for _ in range(8):
            envelope = await finder.execute(JOBS, {"page": "3"})
            await finder.drain()

            assert len(envelope.data) == 5
            assert envelope.total == 45
            assert envelope.has_next_page is False
            assert envelope.has_prev_page is True

        assert await finder.invalidate(JOBS) == 0
        assert cache.breaker.is_open()

    @pytest.mark.asyncio
    async def test_cancelled_store_read_raises_query_failed(self, finder, store):
        with patch.object(store, "count", new=AsyncMock(side_effect=asyncio.CancelledError())):
            with pytest.raises(QueryFailedError) as exc_info:
                await finder.execute(JOBS, {})

        assert exc_info.value.details["error_type"] == "CancelledError"
        assert finder.pending_writes == 0

    @pytest.mark.asyncio
    async def test_background_write_error_is_contained(self, store):
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock(side_effect=RuntimeError("boom"))
        finder = CachedFinder(cache, store)

        envelope = await finder.execute(JOBS, {})
        await finder.drain()

        assert envelope.total == 45
        assert finder.pending_writes == 0

    @pytest.mark.asyncio
    async def test_store_failure_raises_query_failed(self, finder, store, redis_client):
        with patch.object(store, "count", new=AsyncMock(side_effect=StoreError("connection lost"))):
            with pytest.raises(QueryFailedError) as exc_info:
                await finder.execute(JOBS, {})

        error = exc_info.value
        assert error.message == "Query failed"
        assert error.entity == "job"
        assert error.status_code == 500
        assert isinstance(error.__cause__, StoreError)
        assert finder.pending_writes == 0
        assert await redis_client.dbsize() == 0


class TestInvalidation:
    """Invalidation scope and write visibility."""

    @pytest.mark.asyncio
    async def test_invalidate_only_touches_entity(self, finder, redis_client):
        await finder.execute(JOBS, {})
        await finder.execute(JOBS, {"page": "2"})
        await finder.execute(BLOGS, {})
        await finder.drain()

        removed = await finder.invalidate(JOBS)

        assert removed == 2
        assert await redis_client.keys("listings:job:*") == []
        assert len(await redis_client.keys("listings:blog:*")) == 1

    @pytest.mark.asyncio
    async def test_invalidate_empty_cache(self, finder):
        assert await finder.invalidate("feedback") == 0

    @pytest.mark.asyncio
    async def test_write_then_invalidate_is_visible(self, finder, store):
        await finder.execute(JOBS, {})
        await finder.drain()

        await store.delete("jobs", "job-044")
        await finder.invalidate(JOBS)
        envelope = await finder.execute(JOBS, {})

        assert envelope.total == 44
        assert envelope.data[0]["_id"] == "job-043"

    @pytest.mark.asyncio
    async def test_stale_until_invalidated(self, finder, store):
        await finder.execute(JOBS, {})
        await finder.drain()

        await store.delete("jobs", "job-044")

        assert (await finder.execute(JOBS, {})).total == 45


class TestDrain:
    """Background write tracking."""

    @pytest.mark.asyncio
    async def test_drain_waits_for_writes(self, finder, redis_client):
        await finder.execute(FEEDBACK, {})

        assert finder.pending_writes == 1
        await finder.drain()

        assert finder.pending_writes == 0
        assert len(await redis_client.keys("listings:feedback:*")) == 1

    @pytest.mark.asyncio
    async def test_drain_without_writes(self, finder):
        await finder.drain()

        assert finder.pending_writes == 0
