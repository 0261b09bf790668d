"""Environment configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.json"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Mock control (opt-in feature gates for testing)
    mock_openrouter: bool = False  # Use mock LLM responses (don't call OpenRouter API)

    # OpenRouter configuration
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "google/gemini-2.0-flash-001"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.2
    recommendation_temperature: float = 0.0
    generation_timeout_seconds: float = 30.0

    # Storage collaborators
    storage_backend: Literal["memory", "supabase"] = "memory"
    catalog_json_path: str = str(DEFAULT_CATALOG_PATH)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_timeout_seconds: float = 10.0

    # Recommendation and ranking policy
    recommendation_limit: int = 10
    max_cached_sets: int = 10000
    ranking_cache_ttl: int = 31 * 24 * 3600
    ranking_region: str = "Cebu, Philippines"

    # Rate limiting
    rate_limit_per_minute: int = 10

    # Server configuration
    port: int = 3000
    host: str = "0.0.0.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    environment: Literal["development", "production"] = "development"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def has_openrouter_key(self) -> bool:
        """Check if OpenRouter API key is configured."""
        return bool(self.openrouter_api_key and self.openrouter_api_key.startswith("sk-"))

    @property
    def uses_supabase(self) -> bool:
        """Check if the hosted backend is selected and reachable in principle."""
        return self.storage_backend == "supabase" and bool(self.supabase_url and self.supabase_key)

    @property
    def supabase_rest_url(self) -> str:
        """PostgREST base URL of the Supabase project."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
