"""Observability utilities: trace IDs, generation metrics, and payload logging.

This module provides:
- Trace ID generation and propagation via context vars
- Prometheus metrics for LLM calls (tokens, latency, errors)
- Prometheus metrics for the recommendation cache and catalog matching
- Structured logging helpers for LLM request/response correlation
"""

import secrets
import time
from contextvars import ContextVar
from dataclasses import dataclass, field

import structlog
from prometheus_client import Counter, Gauge, Histogram

logger = structlog.get_logger()

# =============================================================================
# Trace ID Context
# =============================================================================

# Context variable for trace ID propagation across async calls
trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")


def generate_trace_id() -> str:
    """Generate cryptographically secure trace ID for request tracking."""
    return secrets.token_hex(16)


def get_trace_id() -> str:
    """Get current trace ID from context, or empty string if not set."""
    return trace_id_ctx.get()


def set_trace_id(trace_id: str) -> None:
    """Set trace ID in context."""
    trace_id_ctx.set(trace_id)


# =============================================================================
# Prometheus Metrics
# =============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total LLM API requests",
    ["model", "status", "purpose"],
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total tokens used in LLM calls",
    ["model"],
)

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "LLM response latency in seconds",
    ["model", "purpose"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

llm_active_requests = Gauge(
    "llm_active_requests",
    "Currently active LLM requests",
    ["model"],
)

recommendation_cache_events_total = Counter(
    "recommendation_cache_events_total",
    "Recommendation cache lookups and writes",
    ["event"],  # values: hit, miss, stored, conflict, skipped, error
)

catalog_unmatched_titles = Histogram(
    "catalog_unmatched_titles",
    "Model-produced titles with no catalog match per request",
    buckets=[0, 1, 2, 3, 5, 10, 20],
)


# =============================================================================
# LLM Payload Logging
# =============================================================================


@dataclass
class GenerationRequestLog:
    """Structured log data for LLM requests."""

    trace_id: str
    model: str
    purpose: str
    prompt_chars: int
    timeout_seconds: float | None
    started_at: float = field(default_factory=time.time)


def log_generation_request(
    model: str,
    purpose: str,
    prompt: str,
    timeout_seconds: float | None = None,
) -> GenerationRequestLog:
    """Log an LLM request and return a handle for correlating the response."""
    log_data = GenerationRequestLog(
        trace_id=get_trace_id(),
        model=model,
        purpose=purpose,
        prompt_chars=len(prompt),
        timeout_seconds=timeout_seconds,
    )

    logger.info(
        "llm_request",
        trace_id=log_data.trace_id,
        model=model,
        purpose=purpose,
        prompt_chars=log_data.prompt_chars,
        timeout_seconds=timeout_seconds,
    )

    llm_active_requests.labels(model=model).inc()
    return log_data


def log_generation_response(
    request_log: GenerationRequestLog,
    tokens_total: int = 0,
    finish_reason: str = "unknown",
    error: str | None = None,
) -> None:
    """Log an LLM response (or failure) and update metrics."""
    latency = time.time() - request_log.started_at
    latency_ms = int(latency * 1000)

    if error:
        logger.error(
            "llm_response",
            trace_id=request_log.trace_id,
            model=request_log.model,
            purpose=request_log.purpose,
            latency_ms=latency_ms,
            error=error,
        )
        status = "error"
    else:
        logger.info(
            "llm_response",
            trace_id=request_log.trace_id,
            model=request_log.model,
            purpose=request_log.purpose,
            tokens_total=tokens_total,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
        )
        status = "success"

    llm_active_requests.labels(model=request_log.model).dec()
    llm_requests_total.labels(
        model=request_log.model, status=status, purpose=request_log.purpose
    ).inc()
    if tokens_total > 0:
        llm_tokens_total.labels(model=request_log.model).inc(tokens_total)
    llm_latency_seconds.labels(model=request_log.model, purpose=request_log.purpose).observe(
        latency
    )


def record_cache_event(event: str) -> None:
    """Count a recommendation cache event (hit, miss, stored, conflict, skipped, error)."""
    recommendation_cache_events_total.labels(event=event).inc()


def record_unmatched_titles(count: int) -> None:
    """Record how many model titles could not be reconciled."""
    catalog_unmatched_titles.observe(count)
