"""Per-user store of generated recommendation sets.

At most one set exists per (user_id, trait_code). Writers race freely; the
store enforces uniqueness and reports the loser as a conflict, so the first
write wins and later writes are no-ops.
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

import httpx
import structlog

from kursor_api.config import get_settings
from kursor_api.models import CachedRecommendationSet, MatchedProgram

logger = structlog.get_logger()

SUPABASE_TABLE = "riasec_recommendation_sets"


class StoreUnavailableError(Exception):
    """Raised when the recommendation store cannot be read or written."""

    pass


class PutResult(str, Enum):
    """Outcome of a store write."""

    STORED = "stored"
    CONFLICT = "conflict"


class RecommendationStore(Protocol):
    async def get(self, user_id: str, trait_code: str) -> CachedRecommendationSet | None: ...

    async def put(
        self,
        user_id: str,
        trait_code: str,
        results: list[MatchedProgram],
        scores: dict[str, int] | None = None,
    ) -> PutResult: ...

    async def list_for_user(self, user_id: str) -> list[CachedRecommendationSet]: ...

    async def delete(self, user_id: str, trait_code: str) -> bool: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


class InMemoryRecommendationStore:
    """Thread-safe in-memory store with a uniqueness constraint per user and code."""

    def __init__(self, max_entries: int | None = None):
        """Initialize the store.

        Args:
            max_entries: Upper bound on stored sets. Defaults to config value.
        """
        settings = get_settings()
        self._max_entries = max_entries or settings.max_cached_sets
        self._sets: dict[tuple[str, str], CachedRecommendationSet] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: str, trait_code: str) -> CachedRecommendationSet | None:
        """Get a cached set, or None if the user has none for this code."""
        with self._lock:
            return self._sets.get((user_id, trait_code))

    async def put(
        self,
        user_id: str,
        trait_code: str,
        results: list[MatchedProgram],
        scores: dict[str, int] | None = None,
    ) -> PutResult:
        """Insert a set unless one already exists for (user_id, trait_code).

        Raises:
            StoreUnavailableError: If the store is full.
        """
        key = (user_id, trait_code)
        with self._lock:
            if key in self._sets:
                return PutResult.CONFLICT
            if len(self._sets) >= self._max_entries:
                raise StoreUnavailableError(
                    f"Recommendation store is full ({self._max_entries} sets)"
                )
            self._sets[key] = CachedRecommendationSet(
                user_id=user_id,
                trait_code=trait_code,
                results=list(results),
                scores=dict(scores) if scores is not None else None,
            )
            return PutResult.STORED

    async def list_for_user(self, user_id: str) -> list[CachedRecommendationSet]:
        """Get every set of a user, newest first."""
        with self._lock:
            owned = [entry for (owner, _), entry in self._sets.items() if owner == user_id]
        return sorted(owned, key=lambda entry: entry.generated_at, reverse=True)

    async def delete(self, user_id: str, trait_code: str) -> bool:
        """Delete a set.

        Returns:
            True if the set was deleted, False if not found.
        """
        with self._lock:
            return self._sets.pop((user_id, trait_code), None) is not None

    async def count(self) -> int:
        """Get the number of stored sets."""
        with self._lock:
            return len(self._sets)

    def clear(self) -> None:
        """Remove all sets."""
        with self._lock:
            self._sets.clear()

    async def close(self) -> None:
        return None


class SupabaseRecommendationStore:
    """Store backed by a Supabase table with UNIQUE (user_id, trait_code)."""

    def __init__(
        self,
        rest_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        table: str = SUPABASE_TABLE,
    ):
        settings = get_settings()
        self._rest_url = rest_url or settings.supabase_rest_url
        self._api_key = api_key or settings.supabase_key
        self._timeout = timeout or settings.supabase_timeout_seconds
        self._table = table
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._rest_url,
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self._timeout),
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        if not self._client:
            await self.connect()
        assert self._client is not None
        try:
            return await self._client.request(method, f"/{self._table}", **kwargs)
        except httpx.HTTPError as e:
            logger.error("Recommendation store request failed", method=method, error=str(e))
            raise StoreUnavailableError(f"Store request failed: {e}") from e

    @staticmethod
    def _from_row(row: dict[str, Any]) -> CachedRecommendationSet:
        return CachedRecommendationSet(
            user_id=str(row["user_id"]),
            trait_code=row["trait_code"],
            results=[MatchedProgram(**item) for item in row.get("results") or []],
            scores=row.get("scores"),
            generated_at=datetime.fromisoformat(row["generated_at"]),
        )

    def _rows(self, response: httpx.Response) -> list[dict[str, Any]]:
        try:
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise StoreUnavailableError(f"Store returned an error: {e}") from e
        if not isinstance(rows, list):
            raise StoreUnavailableError("Unexpected store payload")
        return rows

    async def get(self, user_id: str, trait_code: str) -> CachedRecommendationSet | None:
        response = await self._request(
            "GET",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "trait_code": f"eq.{trait_code}",
                "limit": "1",
            },
        )
        rows = self._rows(response)
        if not rows:
            return None
        try:
            return self._from_row(rows[0])
        except (KeyError, TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Malformed cached set: {e}") from e

    async def put(
        self,
        user_id: str,
        trait_code: str,
        results: list[MatchedProgram],
        scores: dict[str, int] | None = None,
    ) -> PutResult:
        entry = CachedRecommendationSet(
            user_id=user_id, trait_code=trait_code, results=list(results), scores=scores
        )
        response = await self._request(
            "POST",
            json=entry.model_dump(mode="json"),
            headers={"Prefer": "resolution=ignore-duplicates,return=representation"},
        )
        # 409 is the unique-violation response when ignore-duplicates is unsupported
        if response.status_code == 409:
            return PutResult.CONFLICT
        rows = self._rows(response)
        return PutResult.STORED if rows else PutResult.CONFLICT

    async def list_for_user(self, user_id: str) -> list[CachedRecommendationSet]:
        response = await self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "generated_at.desc"},
        )
        try:
            return [self._from_row(row) for row in self._rows(response)]
        except (KeyError, TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Malformed cached set: {e}") from e

    async def delete(self, user_id: str, trait_code: str) -> bool:
        response = await self._request(
            "DELETE",
            params={"user_id": f"eq.{user_id}", "trait_code": f"eq.{trait_code}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(self._rows(response))

    async def count(self) -> int:
        response = await self._request(
            "HEAD", params={"select": "user_id"}, headers={"Prefer": "count=exact"}
        )
        if response.is_error:
            raise StoreUnavailableError(f"Store count failed ({response.status_code})")
        content_range = response.headers.get("content-range", "*/0")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0


# Global store instance
_store: RecommendationStore | None = None


def get_recommendation_store() -> RecommendationStore:
    """Get the global recommendation store for the configured storage backend."""
    global _store
    if _store is None:
        if get_settings().uses_supabase:
            _store = SupabaseRecommendationStore()
        else:
            _store = InMemoryRecommendationStore()
    return _store


async def close_recommendation_store() -> None:
    """Close the global recommendation store."""
    global _store
    if _store:
        await _store.close()
        _store = None


def reset_recommendation_store() -> None:
    """Reset the global recommendation store (useful for testing)."""
    global _store
    _store = None
