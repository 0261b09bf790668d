"""Catalog readers for programs and institutions.

Two backends are available: a static JSON seed for local development and
tests, and the hosted Supabase project read through its PostgREST endpoint.
"""

import json
from pathlib import Path
from typing import Any, Protocol

import httpx
import structlog

from kursor_api.config import get_settings
from kursor_api.models import CatalogEntry, Institution

logger = structlog.get_logger()


class CatalogUnavailableError(Exception):
    """Raised when the catalog cannot be read."""

    pass


class CatalogReader(Protocol):
    """Read-only access to the canonical program and institution lists."""

    async def fetch_all_programs(self) -> list[CatalogEntry]: ...

    async def fetch_all_institutions(self) -> list[Institution]: ...

    async def close(self) -> None: ...


def _as_tags(value: Any) -> list[str]:
    """Keep only string tags; anything that is not a list counts as no tags."""
    if not isinstance(value, list):
        return []
    return [tag.strip().upper() for tag in value if isinstance(tag, str) and tag.strip()]


def program_from_row(row: dict[str, Any]) -> CatalogEntry:
    """Build a catalog entry from a `programs` row."""
    return CatalogEntry(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        affiliation_name=str(row.get("school") or row.get("affiliation_name") or ""),
        description=str(row.get("description") or ""),
        trait_tags=_as_tags(row.get("riasec_tags", row.get("trait_tags"))),
    )


def institution_from_row(row: dict[str, Any]) -> Institution:
    """Build an institution from a `schools` row."""
    return Institution(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        logo_url=row.get("school_logo") or row.get("logo_url"),
        location=str(row.get("location") or ""),
        description=str(row.get("description") or ""),
    )


class StaticCatalog:
    """Catalog backed by a JSON document with `programs` and `schools` arrays."""

    def __init__(self, path: str | Path | None = None):
        settings = get_settings()
        self._path = Path(path or settings.catalog_json_path)
        self._programs: list[CatalogEntry] | None = None
        self._institutions: list[Institution] | None = None

    def _load(self) -> None:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            self._programs = [program_from_row(row) for row in data.get("programs", [])]
            self._institutions = [institution_from_row(row) for row in data.get("schools", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Failed to load catalog seed", path=str(self._path), error=str(e))
            raise CatalogUnavailableError(f"Catalog seed unreadable: {e}") from e

        logger.info(
            "Catalog seed loaded",
            path=str(self._path),
            programs=len(self._programs),
            schools=len(self._institutions),
        )

    async def fetch_all_programs(self) -> list[CatalogEntry]:
        if self._programs is None:
            self._load()
        return list(self._programs or [])

    async def fetch_all_institutions(self) -> list[Institution]:
        if self._institutions is None:
            self._load()
        return list(self._institutions or [])

    async def close(self) -> None:
        return None


class SupabaseCatalog:
    """Catalog read from the Supabase `programs` and `schools` tables."""

    def __init__(
        self,
        rest_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._rest_url = rest_url or settings.supabase_rest_url
        self._api_key = api_key or settings.supabase_key
        self._timeout = timeout or settings.supabase_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._rest_url,
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self._timeout),
        )
        logger.info("Supabase catalog connected", url=self._rest_url)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _select_all(self, table: str) -> list[dict[str, Any]]:
        if not self._client:
            await self.connect()
        assert self._client is not None

        try:
            response = await self._client.get(f"/{table}", params={"select": "*"})
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Catalog read failed", table=table, error=str(e))
            raise CatalogUnavailableError(f"Failed to read {table}: {e}") from e

        if not isinstance(rows, list):
            raise CatalogUnavailableError(f"Unexpected payload for {table}")
        return rows

    async def fetch_all_programs(self) -> list[CatalogEntry]:
        rows = await self._select_all("programs")
        return [program_from_row(row) for row in rows if row.get("id") is not None]

    async def fetch_all_institutions(self) -> list[Institution]:
        rows = await self._select_all("schools")
        return [institution_from_row(row) for row in rows if row.get("id") is not None]


# Global catalog instance
_catalog: CatalogReader | None = None


def get_catalog() -> CatalogReader:
    """Get the global catalog reader for the configured storage backend."""
    global _catalog
    if _catalog is None:
        settings = get_settings()
        if settings.uses_supabase:
            _catalog = SupabaseCatalog()
        else:
            _catalog = StaticCatalog()
    return _catalog


async def close_catalog() -> None:
    """Close the global catalog reader."""
    global _catalog
    if _catalog:
        await _catalog.close()
        _catalog = None


def reset_catalog() -> None:
    """Reset the global catalog reader (for testing)."""
    global _catalog
    _catalog = None
