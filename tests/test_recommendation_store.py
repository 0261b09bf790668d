"""Tests for recommendation stores."""

import json

import httpx
import pytest

from kursor_api.models import MatchedProgram
from kursor_api.recommendation_store import (
    InMemoryRecommendationStore,
    PutResult,
    StoreUnavailableError,
    SupabaseRecommendationStore,
)


def _results(*titles: str) -> list[MatchedProgram]:
    return [
        MatchedProgram(rank=i, catalog_entry_id=str(i), title=title)
        for i, title in enumerate(titles, start=1)
    ]


def _supabase_with_transport(handler) -> SupabaseRecommendationStore:
    store = SupabaseRecommendationStore(rest_url="https://db.test/rest/v1", api_key="service-key")
    store._client = httpx.AsyncClient(
        base_url="https://db.test/rest/v1", transport=httpx.MockTransport(handler)
    )
    return store


def _row(user_id: str = "u1", trait_code: str = "RIA") -> dict:
    return {
        "user_id": user_id,
        "trait_code": trait_code,
        "results": [{"rank": 1, "catalog_entry_id": "p1", "title": "BS Nursing"}],
        "scores": {"R": 5},
        "generated_at": "2026-10-01T08:00:00+00:00",
    }


class TestInMemoryRecommendationStore:
    """Tests for InMemoryRecommendationStore."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        """Test a stored set can be read back."""
        store = InMemoryRecommendationStore()
        assert await store.put("u1", "RIA", _results("A"), {"R": 5}) is PutResult.STORED
        cached = await store.get("u1", "RIA")
        assert cached is not None
        assert [r.title for r in cached.results] == ["A"]
        assert cached.scores == {"R": 5}

    @pytest.mark.asyncio
    async def test_first_writer_wins(self):
        """Test a second write for the same key is a no-op conflict."""
        store = InMemoryRecommendationStore()
        await store.put("u1", "RIA", _results("first"))
        assert await store.put("u1", "RIA", _results("second")) is PutResult.CONFLICT
        assert (await store.get("u1", "RIA")).results[0].title == "first"

    @pytest.mark.asyncio
    async def test_keys_are_per_user_and_code(self):
        """Test different users and codes do not collide."""
        store = InMemoryRecommendationStore()
        await store.put("u1", "RIA", _results("A"))
        assert await store.put("u2", "RIA", _results("B")) is PutResult.STORED
        assert await store.put("u1", "SEC", _results("C")) is PutResult.STORED
        assert await store.count() == 3
        assert await store.get("u2", "SEC") is None

    @pytest.mark.asyncio
    async def test_list_and_delete(self):
        """Test listing is per user and delete reports what it did."""
        store = InMemoryRecommendationStore()
        await store.put("u1", "RIA", _results("A"))
        await store.put("u1", "SEC", _results("B"))
        await store.put("u2", "RIA", _results("C"))

        assert {entry.trait_code for entry in await store.list_for_user("u1")} == {"RIA", "SEC"}
        assert await store.delete("u1", "RIA") is True
        assert await store.delete("u1", "RIA") is False
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_full_store(self):
        """Test writes fail once the store is full."""
        store = InMemoryRecommendationStore(max_entries=1)
        await store.put("u1", "RIA", _results("A"))
        with pytest.raises(StoreUnavailableError):
            await store.put("u2", "RIA", _results("B"))

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clear empties the store."""
        store = InMemoryRecommendationStore()
        await store.put("u1", "RIA", _results("A"))
        store.clear()
        assert await store.count() == 0


class TestSupabaseRecommendationStore:
    """Tests for SupabaseRecommendationStore."""

    @pytest.mark.asyncio
    async def test_get(self):
        """Test rows are filtered by user and code."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[_row()])

        store = _supabase_with_transport(handler)
        cached = await store.get("u1", "RIA")
        assert cached.results[0].title == "BS Nursing"
        assert seen["params"]["user_id"] == "eq.u1"
        assert seen["params"]["trait_code"] == "eq.RIA"
        await store.close()

    @pytest.mark.asyncio
    async def test_get_missing(self):
        """Test an empty result means no cached set."""
        store = _supabase_with_transport(lambda request: httpx.Response(200, json=[]))
        assert await store.get("u1", "RIA") is None
        await store.close()

    @pytest.mark.asyncio
    async def test_put_stored(self):
        """Test an inserted row reports STORED."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["prefer"] = request.headers.get("prefer")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=[_row()])

        store = _supabase_with_transport(handler)
        assert await store.put("u1", "RIA", _results("BS Nursing")) is PutResult.STORED
        assert "ignore-duplicates" in seen["prefer"]
        assert seen["body"]["trait_code"] == "RIA"
        await store.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response", [httpx.Response(409, json={"code": "23505"}), httpx.Response(201, json=[])]
    )
    async def test_put_conflict(self, response):
        """Test duplicates report CONFLICT."""
        store = _supabase_with_transport(lambda request: response)
        assert await store.put("u1", "RIA", _results("X")) is PutResult.CONFLICT
        await store.close()

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Test connection errors raise StoreUnavailableError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        store = _supabase_with_transport(handler)
        with pytest.raises(StoreUnavailableError):
            await store.get("u1", "RIA")
        await store.close()

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Test 5xx responses raise StoreUnavailableError."""
        store = _supabase_with_transport(lambda request: httpx.Response(503, json={}))
        with pytest.raises(StoreUnavailableError):
            await store.list_for_user("u1")
        await store.close()

    @pytest.mark.asyncio
    async def test_count(self):
        """Test the total is read from content-range."""
        store = _supabase_with_transport(
            lambda request: httpx.Response(200, headers={"content-range": "0-9/42"})
        )
        assert await store.count() == 42
        await store.close()

    @pytest.mark.asyncio
    async def test_delete(self):
        """Test delete reports whether a row was removed."""
        store = _supabase_with_transport(lambda request: httpx.Response(200, json=[_row()]))
        assert await store.delete("u1", "RIA") is True
        await store.close()
