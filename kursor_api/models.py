"""Pydantic models for API requests and responses."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator

RecommendationStatus = Literal[
    "generated",
    "cached",
    "no_catalog",
    "catalog_unavailable",
    "store_unavailable",
    "generation_failed",
]

# =============================================================================
# Catalog Models
# =============================================================================


class CatalogEntry(BaseModel):
    """A degree program offered by a school."""

    id: str = Field(..., description="Opaque program identifier")
    title: str = Field(..., description="Program title, e.g. 'BS Computer Science'")
    affiliation_name: str = Field(default="", description="Name of the offering school")
    description: str = Field(default="", description="Program description")
    trait_tags: list[str] = Field(default_factory=list, description="RIASEC letters for the program")


class Institution(BaseModel):
    """A school or university."""

    id: str = Field(..., description="Opaque institution identifier")
    name: str = Field(..., description="Institution name")
    logo_url: str | None = Field(default=None, description="Logo image URL")
    location: str = Field(default="", description="Address or city")
    description: str = Field(default="", description="Short description")


# =============================================================================
# Recommendation Models
# =============================================================================


class MatchedProgram(BaseModel):
    """A catalog program placed in a recommendation list."""

    rank: int = Field(..., ge=1, description="1-based position assigned by the ranking step")
    catalog_entry_id: str
    title: str
    affiliation_name: str = ""
    rationale: str = ""


class RecommendationDiagnostics(BaseModel):
    """Observability data for a generated recommendation list."""

    catalog_size: int = 0
    requested: int = Field(0, description="Titles returned by the model")
    matched: int = Field(0, description="Titles reconciled against the catalog")
    unmatched: list[str] = Field(default_factory=list, description="Titles with no catalog match")
    parse_mode: Literal["json", "lines", "failed"] = "failed"


class CachedRecommendationSet(BaseModel):
    """Persisted recommendations for one user and trait code."""

    user_id: str
    trait_code: str
    results: list[MatchedProgram] = Field(default_factory=list)
    scores: dict[str, int] | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Ranking Models
# =============================================================================


class RankedInstitution(BaseModel):
    """An institution placed in a generated ranking."""

    rank: int = Field(..., ge=1)
    institution_id: str
    name: str
    logo_url: str | None = None
    rationale: str = ""
    star_rating: float = Field(..., ge=0.0, le=5.0)


class RankingDiagnostics(BaseModel):
    """Observability data for a reconciled ranking."""

    requested: int = 0
    matched: int = 0
    unmatched: list[str] = Field(default_factory=list)


# =============================================================================
# Survey / Assessment API Models
# =============================================================================


class SurveyItemResponse(BaseModel):
    """A questionnaire statement as served to clients."""

    id: int
    prompt_text: str
    trait_category: str


class SurveyResponse(BaseModel):
    """Response for the survey endpoint."""

    items: list[SurveyItemResponse]
    scale: dict[int, str] = Field(..., description="Likert value to label")
    trait_names: dict[str, str]


class ScoreRequest(BaseModel):
    """Request body for the scoring endpoint."""

    answers: dict[int, int] = Field(
        default_factory=dict, description="Survey item id to Likert answer (1-5)"
    )


class ScoreResponse(BaseModel):
    """Trait totals and the derived trait code."""

    scores: dict[str, int]
    trait_code: str
    answered: int = Field(..., description="Number of answers received")


# =============================================================================
# Recommendation API Models
# =============================================================================


class RecommendRequest(BaseModel):
    """Request body for the recommendation endpoint.

    Either a trait code or a raw answer set must be given. When answers are
    sent, the service scores them first.
    """

    trait_code: str | None = Field(default=None, max_length=8)
    answers: dict[int, int] | None = None

    @model_validator(mode="after")
    def _require_code_or_answers(self) -> "RecommendRequest":
        if not self.trait_code and self.answers is None:
            raise ValueError("Provide either 'trait_code' or 'answers'")
        return self


class RecommendationResponse(BaseModel):
    """Response for the recommendation endpoint."""

    status: RecommendationStatus
    trait_code: str
    results: list[MatchedProgram] = Field(default_factory=list)
    scores: dict[str, int] | None = None
    diagnostics: RecommendationDiagnostics | None = None
    generated_at: datetime | None = None
    persisted: bool = False


class RecommendationHistoryResponse(BaseModel):
    """The caller's cached recommendation sets, newest first."""

    sets: list[CachedRecommendationSet]


class TopInstitutionsResponse(BaseModel):
    """Response for the institution ranking endpoint."""

    status: Literal["generated", "cached", "no_catalog"]
    period: str = Field(..., description="Ranking month, YYYY-MM")
    institutions: list[RankedInstitution] = Field(default_factory=list)
    diagnostics: RankingDiagnostics | None = None


# =============================================================================
# Advisor Chat Models
# =============================================================================


class AdvisorChatRequest(BaseModel):
    """Request body for the advisor chat endpoint."""

    question: str = Field(..., min_length=1, max_length=2000, description="User question")


class AdvisorChatResponse(BaseModel):
    """Advisor chat answer."""

    answer: str
    tokens_used: int = 0
    blocked: bool = Field(False, description="True when the question was stopped by guardrails")


# =============================================================================
# Health API Models
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Service status")
    catalog_connected: bool = Field(..., description="Catalog collaborator reachable")
    catalog_programs: int | None = Field(None, description="Number of programs in the catalog")
    cached_sets: int | None = Field(None, description="Number of cached recommendation sets")
    storage_backend: str
    version: str = Field(..., description="API version")
