"""FastAPI application entrypoint for the Kursor API."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from kursor_api import __version__
from kursor_api.advisor import AdvisorService
from kursor_api.catalog import CatalogUnavailableError, close_catalog, get_catalog
from kursor_api.config import get_settings
from kursor_api.models import (
    AdvisorChatRequest,
    AdvisorChatResponse,
    HealthResponse,
    RecommendationHistoryResponse,
    RecommendationResponse,
    RecommendRequest,
    ScoreRequest,
    ScoreResponse,
    SurveyItemResponse,
    SurveyResponse,
    TopInstitutionsResponse,
)
from kursor_api.observability import generate_trace_id, set_trace_id
from kursor_api.openrouter_client import (
    OpenRouterAuthError,
    OpenRouterError,
    close_openrouter_client,
    get_openrouter_client,
)
from kursor_api.rankings import RankingUnavailableError, get_ranking_service
from kursor_api.recommendation_store import (
    StoreUnavailableError,
    close_recommendation_store,
    get_recommendation_store,
)
from kursor_api.recommender import RecommendationService
from kursor_api.scoring import InvalidAnswerError, InvalidTraitCodeError, rank, score, validate_answers
from kursor_api.survey import LIKERT_LABELS, TRAIT_NAMES, list_items

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structlog
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

TRY_AGAIN = "Could not generate recommendations right now. Please try again."


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(
        "Starting Kursor API",
        version=__version__,
        environment=settings.environment,
        storage=settings.storage_backend,
        openrouter_configured=settings.has_openrouter_key,
        mock_openrouter=settings.mock_openrouter,
    )

    try:
        await get_openrouter_client()
        logger.info("OpenRouter client initialized")
    except Exception as e:
        logger.warning("Failed to initialize OpenRouter client", error=str(e))

    yield

    logger.info("Shutting down Kursor API")
    await close_openrouter_client()
    await close_catalog()
    await close_recommendation_store()


app = FastAPI(
    title="Kursor API",
    description="RIASEC assessment scoring with AI-assisted school and program recommendations",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Add trace ID to every request for log correlation."""
    trace_id = request.headers.get("X-Trace-ID", generate_trace_id())
    set_trace_id(trace_id)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)

    response = await call_next(request)
    response.headers["X-Trace-ID"] = trace_id
    return response


app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

Instrumentator().instrument(app).expose(app)


# =============================================================================
# Dependencies
# =============================================================================


async def current_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Opaque caller identity; absent means anonymous preview mode."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


async def require_user_id(user_id: str | None = Depends(current_user_id)) -> str:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Sign in to access saved recommendations.")
    return user_id


async def get_recommendation_service() -> RecommendationService:
    return RecommendationService(
        catalog=get_catalog(),
        generator=await get_openrouter_client(),
        store=get_recommendation_store(),
    )


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse)
@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check the health of the API and its collaborators."""
    try:
        programs = len(await get_catalog().fetch_all_programs())
        catalog_connected = True
    except CatalogUnavailableError:
        programs = None
        catalog_connected = False

    try:
        cached_sets = await get_recommendation_store().count()
    except StoreUnavailableError:
        cached_sets = None

    if catalog_connected and programs and cached_sets is not None:
        status = "healthy"
    else:
        status = "degraded"

    return HealthResponse(
        status=status,
        catalog_connected=catalog_connected,
        catalog_programs=programs,
        cached_sets=cached_sets,
        storage_backend=settings.storage_backend,
        version=__version__,
    )


# =============================================================================
# Assessment Endpoints
# =============================================================================


@app.get("/api/v1/survey", response_model=SurveyResponse)
async def get_survey() -> SurveyResponse:
    """Questionnaire items with the Likert scale labels."""
    items = [
        SurveyItemResponse(id=item.id, prompt_text=item.prompt_text, trait_category=item.trait_category)
        for item in list_items()
    ]
    return SurveyResponse(items=items, scale=LIKERT_LABELS, trait_names=TRAIT_NAMES)


@app.post("/api/v1/assessment/score", response_model=ScoreResponse)
async def score_assessment(score_request: ScoreRequest) -> ScoreResponse:
    """Score an answer set into trait totals and a trait code."""
    try:
        validate_answers(score_request.answers)
    except InvalidAnswerError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    scores = score(score_request.answers)
    return ScoreResponse(
        scores=scores,
        trait_code=rank(scores),
        answered=len(score_request.answers),
    )


# =============================================================================
# Recommendation Endpoints
# =============================================================================


@app.post("/api/v1/recommendations", response_model=RecommendationResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def recommend(
    request: Request,
    recommend_request: RecommendRequest,
    user_id: str | None = Depends(current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    """
    Recommend programs for a trait code.

    - **trait_code**: three RIASEC letters, e.g. "RIA"
    - **answers**: alternatively, raw survey answers to score first

    Send `X-User-ID` to cache the result; anonymous calls are previews.
    """
    scores = None
    if recommend_request.answers is not None:
        try:
            validate_answers(recommend_request.answers)
        except InvalidAnswerError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        scores = score(recommend_request.answers)

    trait_code = recommend_request.trait_code or rank(scores or {})

    try:
        outcome = await service.recommend(trait_code, user_id=user_id, scores=scores)
    except InvalidTraitCodeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    if outcome.status == "generation_failed":
        raise HTTPException(status_code=502, detail=TRY_AGAIN)
    if outcome.status == "catalog_unavailable":
        raise HTTPException(
            status_code=503, detail="Program catalog unavailable. Please try again later."
        )
    if outcome.status == "store_unavailable":
        raise HTTPException(
            status_code=503, detail="Saved recommendations unavailable. Please try again later."
        )

    return RecommendationResponse(
        status=outcome.status,
        trait_code=outcome.trait_code,
        results=outcome.results,
        scores=scores,
        diagnostics=outcome.diagnostics,
        generated_at=outcome.generated_at,
        persisted=outcome.persisted,
    )


@app.get("/api/v1/recommendations/history", response_model=RecommendationHistoryResponse)
async def recommendation_history(
    user_id: str = Depends(require_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationHistoryResponse:
    """The caller's saved recommendation sets, newest first."""
    try:
        sets = await service.history(user_id)
    except StoreUnavailableError as e:
        logger.error("Recommendation history unavailable", error=str(e))
        raise HTTPException(status_code=503, detail="Saved recommendations unavailable.") from e
    return RecommendationHistoryResponse(sets=sets)


@app.delete("/api/v1/recommendations/{trait_code}", status_code=204)
async def delete_recommendations(
    trait_code: str,
    user_id: str = Depends(require_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> None:
    """Delete the caller's saved set for a trait code."""
    try:
        deleted = await service.forget(user_id, trait_code)
    except InvalidTraitCodeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail="Saved recommendations unavailable.") from e
    if not deleted:
        raise HTTPException(status_code=404, detail="No saved recommendations for this code.")


# =============================================================================
# Ranking Endpoints
# =============================================================================


@app.get("/api/v1/top-institutions", response_model=TopInstitutionsResponse)
async def top_institutions() -> TopInstitutionsResponse:
    """This month's top institutions with star ratings."""
    service = await get_ranking_service()
    try:
        result = await service.top_institutions()
    except CatalogUnavailableError as e:
        raise HTTPException(status_code=503, detail="School catalog unavailable.") from e
    except RankingUnavailableError as e:
        raise HTTPException(status_code=502, detail="Could not rank schools right now. Please try again.") from e

    return TopInstitutionsResponse(
        status=result.status,
        period=result.period,
        institutions=result.outcome.institutions,
        diagnostics=result.outcome.diagnostics,
    )


# =============================================================================
# Advisor Endpoints
# =============================================================================


@app.post("/api/v1/advisor/chat", response_model=AdvisorChatResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def advisor_chat(request: Request, chat_request: AdvisorChatRequest) -> AdvisorChatResponse:
    """Ask the career advisor about schools, programs, and careers."""
    advisor = AdvisorService(get_catalog(), await get_openrouter_client())
    try:
        answer = await advisor.ask(chat_request.question)
    except OpenRouterAuthError as e:
        raise HTTPException(
            status_code=503,
            detail="AI service not configured. Please contact the administrator.",
        ) from e
    except OpenRouterError as e:
        raise HTTPException(status_code=502, detail="Advisor unavailable. Please try again.") from e

    return AdvisorChatResponse(answer=answer.answer, tokens_used=answer.tokens_used, blocked=answer.blocked)


# =============================================================================
# Entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kursor_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
