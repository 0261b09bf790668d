"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Iterator

import pytest

from kursor_api.config import Settings
from kursor_api.models import CatalogEntry, Institution

# Set test environment variables before importing app modules
os.environ.setdefault("OPENROUTER_API_KEY", "")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("STORAGE_BACKEND", "memory")
# Increase rate limit for testing
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
# Serve LLM calls from the mock handler in tests
os.environ.setdefault("MOCK_OPENROUTER", "true")


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    """Reset cached settings and singletons before each test."""
    from kursor_api.catalog import reset_catalog
    from kursor_api.config import get_settings
    from kursor_api.openrouter_client import reset_openrouter_client
    from kursor_api.rankings import reset_ranking_service
    from kursor_api.recommendation_store import reset_recommendation_store

    def _reset() -> None:
        get_settings.cache_clear()
        reset_catalog()
        reset_openrouter_client()
        reset_ranking_service()
        reset_recommendation_store()

    _reset()

    # Reset rate limiter storage
    try:
        from kursor_api.main import limiter

        if hasattr(limiter, "_storage") and limiter._storage:
            limiter._storage.reset()
    except (ImportError, AttributeError):
        pass

    yield
    _reset()


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Settings]:
    """Fixture to set test settings."""

    def _mock_settings(**kwargs: str) -> Settings:
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        from kursor_api.config import get_settings

        get_settings.cache_clear()
        return get_settings()

    return _mock_settings


@pytest.fixture
def programs() -> list[CatalogEntry]:
    """A small program catalog."""
    return [
        CatalogEntry(
            id="1",
            title="Bachelor of Science in Nursing",
            affiliation_name="Southwestern University PHINMA",
            description="Patient care and clinical practice.",
            trait_tags=["S", "I"],
        ),
        CatalogEntry(
            id="2",
            title="BS Computer Science",
            affiliation_name="University of the Philippines Cebu",
            description="Algorithms and software.",
            trait_tags=["I", "R"],
        ),
        CatalogEntry(
            id="3",
            title="BS Accountancy",
            affiliation_name="University of Cebu",
            description="",
            trait_tags=["C", "E"],
        ),
        CatalogEntry(
            id="4",
            title="Bachelor of Fine Arts",
            affiliation_name="University of the Philippines Cebu",
            description="Studio arts.",
            trait_tags=["A"],
        ),
    ]


@pytest.fixture
def institutions() -> list[Institution]:
    """A small institution catalog."""
    return [
        Institution(id="usc", name="University of San Carlos", logo_url="https://img.test/usc.png"),
        Institution(id="cnu", name="Cebu Normal University"),
        Institution(id="uc", name="University of Cebu"),
    ]
