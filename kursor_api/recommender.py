"""Recommendation orchestration.

Pipeline for one trait code:
1. Cache lookup - return the caller's stored set when one exists
2. Catalog fetch - full program list from the catalog collaborator
3. Prompt + generation - the model picks ten catalog titles
4. Parse - tolerant JSON / line parsing of the model output
5. Match - reconcile titles against the catalog
6. Persist - first writer per (user, trait code) wins; empty sets are not stored

Collaborator failures become outcome statuses; only invalid input raises.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from kursor_api.catalog import CatalogReader, CatalogUnavailableError
from kursor_api.config import get_settings
from kursor_api.matching import match_titles
from kursor_api.models import (
    CachedRecommendationSet,
    MatchedProgram,
    RecommendationDiagnostics,
    RecommendationStatus,
)
from kursor_api.observability import record_cache_event, record_unmatched_titles
from kursor_api.openrouter_client import GenerationError, OpenRouterClient
from kursor_api.prompts import RECOMMENDATION_SYSTEM_PROMPT, build_recommendation_prompt
from kursor_api.recommendation_store import (
    PutResult,
    RecommendationStore,
    StoreUnavailableError,
)
from kursor_api.response_parser import ParseFailed, parse_title_list
from kursor_api.scoring import validate_trait_code

logger = structlog.get_logger()

NO_DESCRIPTION = "No description available"


@dataclass
class RecommendationOutcome:
    """Result of one recommend() call."""

    status: RecommendationStatus
    trait_code: str
    results: list[MatchedProgram] = field(default_factory=list)
    diagnostics: RecommendationDiagnostics | None = None
    generated_at: datetime | None = None
    persisted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("generated", "cached", "no_catalog")


class RecommendationService:
    """Coordinates catalog, generator, matcher, and store for one request."""

    def __init__(
        self,
        catalog: CatalogReader,
        generator: OpenRouterClient,
        store: RecommendationStore,
        limit: int | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._catalog = catalog
        self._generator = generator
        self._store = store
        self._limit = limit or settings.recommendation_limit
        self._timeout = timeout or settings.generation_timeout_seconds
        self._temperature = settings.recommendation_temperature

    async def recommend(
        self,
        trait_code: str,
        user_id: str | None = None,
        scores: dict[str, int] | None = None,
    ) -> RecommendationOutcome:
        """Recommend catalog programs for a trait code.

        Args:
            trait_code: Three distinct RIASEC letters.
            user_id: Caller identity. None runs an anonymous preview that
                neither reads nor writes the cache.
            scores: Trait totals stored alongside the set for history views.

        Raises:
            InvalidTraitCodeError: Before any I/O, for a malformed code.
        """
        code = validate_trait_code(trait_code)
        log = logger.bind(trait_code=code, anonymous=user_id is None)

        if user_id is not None:
            try:
                cached = await self._store.get(user_id, code)
            except StoreUnavailableError as e:
                record_cache_event("error")
                log.error("Recommendation cache read failed", error=str(e))
                return RecommendationOutcome(status="store_unavailable", trait_code=code, error=str(e))
            if cached is not None:
                record_cache_event("hit")
                log.info("Recommendation cache hit", results=len(cached.results))
                return self._from_cached(cached, status="cached")
            record_cache_event("miss")
        else:
            record_cache_event("skipped")

        try:
            catalog = await self._catalog.fetch_all_programs()
        except CatalogUnavailableError as e:
            log.error("Catalog unavailable", error=str(e))
            return RecommendationOutcome(status="catalog_unavailable", trait_code=code, error=str(e))

        if not catalog:
            log.warning("Catalog is empty")
            return RecommendationOutcome(
                status="no_catalog",
                trait_code=code,
                diagnostics=RecommendationDiagnostics(catalog_size=0),
            )

        prompt = build_recommendation_prompt(code, catalog, count=self._limit)
        try:
            response = await self._generator.generate(
                prompt,
                timeout=self._timeout,
                system_prompt=RECOMMENDATION_SYSTEM_PROMPT,
                temperature=self._temperature,
                purpose="recommend",
            )
        except GenerationError as e:
            log.error("Recommendation generation failed", error=str(e), error_type=type(e).__name__)
            return RecommendationOutcome(status="generation_failed", trait_code=code, error=str(e))

        parsed = parse_title_list(response.content)
        outcome = match_titles(parsed.titles, catalog, limit=self._limit)
        record_unmatched_titles(len(outcome.unmatched))

        results = [
            MatchedProgram(
                rank=rank,
                catalog_entry_id=entry.id,
                title=entry.title,
                affiliation_name=entry.affiliation_name,
                rationale=entry.description or NO_DESCRIPTION,
            )
            for rank, entry in enumerate(outcome.entries, start=1)
        ]
        diagnostics = RecommendationDiagnostics(
            catalog_size=len(catalog),
            requested=outcome.requested,
            matched=outcome.matched,
            unmatched=outcome.unmatched,
            parse_mode=parsed.mode,
        )
        log.info(
            "Recommendations generated",
            catalog_size=len(catalog),
            requested=outcome.requested,
            matched=outcome.matched,
            parse_mode=parsed.mode,
        )

        generated = RecommendationOutcome(
            status="generated",
            trait_code=code,
            results=results,
            diagnostics=diagnostics,
            generated_at=datetime.now(timezone.utc),
        )
        if user_id is None:
            return generated
        if isinstance(parsed, ParseFailed) or not results:
            log.warning("Empty recommendation set not cached", parse_mode=parsed.mode)
            return generated
        return await self._persist(user_id, generated, scores)

    async def _persist(
        self,
        user_id: str,
        generated: RecommendationOutcome,
        scores: dict[str, int] | None,
    ) -> RecommendationOutcome:
        """Write the set once; on conflict return whatever the first writer stored."""
        code = generated.trait_code
        try:
            result = await self._store.put(user_id, code, generated.results, scores)
        except StoreUnavailableError as e:
            record_cache_event("error")
            logger.warning("Recommendation cache write failed", trait_code=code, error=str(e))
            return generated

        record_cache_event(result.value)
        if result is PutResult.STORED:
            generated.persisted = True
            return generated

        logger.info("Recommendation set already stored by a concurrent request", trait_code=code)
        try:
            existing = await self._store.get(user_id, code)
        except StoreUnavailableError as e:
            logger.warning("Re-read after write conflict failed", trait_code=code, error=str(e))
            return generated
        if existing is None:
            return generated

        stored = self._from_cached(existing, status="generated")
        stored.diagnostics = generated.diagnostics
        return stored

    @staticmethod
    def _from_cached(cached: CachedRecommendationSet, status: RecommendationStatus) -> RecommendationOutcome:
        return RecommendationOutcome(
            status=status,
            trait_code=cached.trait_code,
            results=list(cached.results),
            generated_at=cached.generated_at,
            persisted=True,
        )

    async def history(self, user_id: str) -> list[CachedRecommendationSet]:
        """List a user's stored sets, newest first.

        Raises:
            StoreUnavailableError: If the store cannot be read.
        """
        return await self._store.list_for_user(user_id)

    async def forget(self, user_id: str, trait_code: str) -> bool:
        """Delete a user's stored set for a trait code.

        Raises:
            InvalidTraitCodeError: For a malformed code.
            StoreUnavailableError: If the store cannot be written.
        """
        code = validate_trait_code(trait_code)
        deleted = await self._store.delete(user_id, code)
        logger.info("Recommendation set deleted", trait_code=code, deleted=deleted)
        return deleted
