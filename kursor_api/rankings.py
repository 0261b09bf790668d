"""Institution ranking: reconcile a generated top-10 against known schools.

The model's ranking is produced once per calendar month and cached; each
ranked name is matched to a catalog institution and given a star rating that
falls linearly from 5.0 at rank 1 to 3.0 at rank 10.
"""

import math
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

import structlog
from cachetools import TTLCache

from kursor_api.catalog import CatalogReader, get_catalog
from kursor_api.config import get_settings
from kursor_api.matching import normalize, titles_overlap
from kursor_api.models import Institution, RankedInstitution, RankingDiagnostics
from kursor_api.openrouter_client import GenerationError, OpenRouterClient, get_openrouter_client
from kursor_api.prompts import RANKING_SYSTEM_PROMPT, build_ranking_prompt
from kursor_api.response_parser import ParseFailed, RawRankedItem, parse_ranking

logger = structlog.get_logger()

MAX_RANK = 10
MAX_STARS = 5.0
MIN_STARS = 3.0


class RankingUnavailableError(Exception):
    """Raised when no ranking can be produced (generation failed)."""

    pass


def star_rating(
    rank: int,
    max_rank: int = MAX_RANK,
    max_stars: float = MAX_STARS,
    min_stars: float = MIN_STARS,
) -> float:
    """Convert a 1-based rank to stars, rounded half-up to the nearest 0.5."""
    if max_rank <= 1:
        return max_stars
    rating = max_stars - (rank - 1) * (max_stars - min_stars) / (max_rank - 1)
    rounded = math.floor(rating * 2 + 0.5) / 2
    return min(max_stars, max(min_stars, rounded))


@dataclass
class RankingOutcome:
    """Reconciled institutions plus what could not be matched."""

    institutions: list[RankedInstitution] = field(default_factory=list)
    diagnostics: RankingDiagnostics = field(default_factory=RankingDiagnostics)


def _find_institution(
    name: str, normalized_institutions: Sequence[tuple[str, Institution]]
) -> Institution | None:
    for normalized_name, institution in normalized_institutions:
        if normalized_name and normalized_name == name:
            return institution
    for normalized_name, institution in normalized_institutions:
        if titles_overlap(normalized_name, name):
            return institution
    return None


def reconcile_rankings(
    raw_ranking: Sequence[RawRankedItem],
    institutions: Sequence[Institution],
    limit: int = MAX_RANK,
) -> RankingOutcome:
    """Match a generated ranking against the institution catalog.

    Rank is the 1-based position in ``raw_ranking`` and is kept even when
    earlier items are dropped for lack of a match. Positions past ``limit``
    are ignored, so ranks stay within 1..limit.
    """
    normalized_institutions = [(normalize(inst.name), inst) for inst in institutions]
    outcome = RankingOutcome(diagnostics=RankingDiagnostics(requested=len(raw_ranking)))

    for rank, item in enumerate(raw_ranking, start=1):
        if rank > limit:
            break
        name = normalize(item.name)
        institution = _find_institution(name, normalized_institutions) if name else None
        if institution is None:
            outcome.diagnostics.unmatched.append(item.name)
            continue

        outcome.institutions.append(
            RankedInstitution(
                rank=rank,
                institution_id=institution.id,
                name=institution.name,
                logo_url=institution.logo_url,
                rationale=item.rationale,
                star_rating=star_rating(rank, max_rank=max(limit, 1)),
            )
        )

    outcome.diagnostics.matched = len(outcome.institutions)
    if outcome.diagnostics.unmatched:
        logger.info(
            "Ranking reconciliation shortfall",
            requested=outcome.diagnostics.requested,
            matched=outcome.diagnostics.matched,
        )
    return outcome


def current_period(now: datetime | None = None) -> str:
    """Ranking period key, e.g. '2026-10'."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


@dataclass
class RankingResult:
    status: Literal["generated", "cached", "no_catalog"]
    period: str
    outcome: RankingOutcome


class RankingService:
    """Monthly generated ranking of catalog institutions."""

    def __init__(
        self,
        catalog: CatalogReader,
        generator: OpenRouterClient,
        ttl_seconds: int | None = None,
        timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = get_settings()
        self._catalog = catalog
        self._generator = generator
        self._timeout = timeout or settings.generation_timeout_seconds
        self._region = settings.ranking_region
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache: TTLCache[str, RankingOutcome] = TTLCache(
            maxsize=12, ttl=ttl_seconds or settings.ranking_cache_ttl
        )
        self._lock = threading.Lock()

    async def top_institutions(self) -> RankingResult:
        """Return this month's ranking, generating it on first use.

        Raises:
            CatalogUnavailableError: If institutions cannot be read.
            RankingUnavailableError: If generation fails. Failed or empty
                rankings are never cached.
        """
        period = current_period(self._clock())
        with self._lock:
            cached = self._cache.get(period)
        if cached is not None:
            return RankingResult(status="cached", period=period, outcome=cached)

        institutions = await self._catalog.fetch_all_institutions()
        if not institutions:
            logger.warning("No institutions available for ranking")
            return RankingResult(status="no_catalog", period=period, outcome=RankingOutcome())

        prompt = build_ranking_prompt(institutions, region=self._region, count=MAX_RANK)
        try:
            response = await self._generator.generate(
                prompt,
                timeout=self._timeout,
                system_prompt=RANKING_SYSTEM_PROMPT,
                purpose="ranking",
            )
        except GenerationError as e:
            logger.error("Ranking generation failed", error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError(str(e)) from e

        parsed = parse_ranking(response.content)
        outcome = reconcile_rankings(parsed.items, institutions)
        logger.info(
            "Institution ranking generated",
            period=period,
            parse_mode=parsed.mode,
            matched=outcome.diagnostics.matched,
        )

        if isinstance(parsed, ParseFailed) or not outcome.institutions:
            logger.warning("Empty institution ranking not cached", period=period, parse_mode=parsed.mode)
            return RankingResult(status="generated", period=period, outcome=outcome)

        with self._lock:
            self._cache[period] = outcome
        return RankingResult(status="generated", period=period, outcome=outcome)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


# Global ranking service instance (holds the monthly cache)
_ranking_service: RankingService | None = None


async def get_ranking_service() -> RankingService:
    """Get or create the global ranking service."""
    global _ranking_service
    if _ranking_service is None:
        _ranking_service = RankingService(get_catalog(), await get_openrouter_client())
    return _ranking_service


def reset_ranking_service() -> None:
    """Reset the global ranking service (for testing)."""
    global _ranking_service
    _ranking_service = None
