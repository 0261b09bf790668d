"""Input and output guardrails for the advisor chat.

This module provides:
- Input validation to detect prompt injection attempts
- Output filtering to prevent leakage of the advisor prompt structure
- Logging of detected attacks for monitoring
"""

import re
from dataclasses import dataclass

import structlog

from kursor_api.observability import get_trace_id

logger = structlog.get_logger()

SUGGESTED_QUESTIONS = (
    "Which schools in Cebu offer BS Nursing?",
    "What careers can I pursue with a degree in Computer Science?",
    "Which programs fit someone who enjoys building things?",
    "What is the difference between BSIT and BSCS?",
)

# Patterns that indicate prompt injection attempts (case-insensitive)
INJECTION_PATTERNS = [
    # Direct instruction override attempts
    r"ignore.*(?:previous|above|all|prior|earlier).*(?:instruction|directive|prompt|rule|command)",
    r"disregard.*(?:previous|above|all|prior|earlier).*(?:instruction|directive|prompt|rule)",
    r"forget.*(?:previous|above|all|prior|earlier).*(?:instruction|directive|prompt|rule)",
    # System prompt extraction attempts
    r"(?:reveal|show|display|output|print|repeat).*(?:system|original|hidden).*(?:prompt|instruction|message)",
    r"(?:what|show).*(?:your|the).*(?:system|initial).*(?:prompt|instruction)",
    # Role/identity manipulation
    r"you are now",
    r"pretend (?:you are|to be)",
    r"roleplay as",
    r"(?:switch to|enter).*mode",
    # Raw data extraction
    r"(?:dump|output|print).*(?:database|raw data|api key)",
    # Delimiter breaking attempts
    r"</?(?:system|admin|root|sudo)>",
]

_compiled_injection_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in INJECTION_PATTERNS]

# Markers of the advisor prompt that must not be echoed back
OUTPUT_FILTER_PATTERNS = [
    r"Database info:",
    r"User Question:",
    r"^Rules:\s*$",
    r"system prompt:",
]

_compiled_output_patterns = [
    re.compile(pattern, re.IGNORECASE | re.MULTILINE) for pattern in OUTPUT_FILTER_PATTERNS
]

FILTERED_RESPONSE = (
    "Sorry, I couldn't put together a good answer to that. "
    "Could you rephrase your question about schools or programs?"
)


@dataclass
class InjectionDetectionResult:
    """Result of injection detection check."""

    is_injection: bool
    matched_pattern: str | None = None


def redirect_message(region: str) -> str:
    """Message returned instead of an answer when a question is blocked."""
    lines = [
        f"I'm here to help you explore schools, programs, and career paths in {region}.",
        "\nYou can ask me things like:",
    ]
    lines.extend(f"- {question}" for question in SUGGESTED_QUESTIONS)
    return "\n".join(lines)


def detect_injection(text: str) -> InjectionDetectionResult:
    """Check if text contains prompt injection patterns."""
    text_normalized = " ".join(text.lower().split())

    for pattern in _compiled_injection_patterns:
        match = pattern.search(text_normalized)
        if match:
            logger.warning(
                "injection_detected",
                trace_id=get_trace_id(),
                pattern=pattern.pattern[:50],
                input_preview=text[:100],
            )
            return InjectionDetectionResult(is_injection=True, matched_pattern=pattern.pattern)

    return InjectionDetectionResult(is_injection=False)


def check_input(text: str, region: str) -> tuple[bool, str]:
    """Check user input and return (is_safe, response_if_blocked)."""
    if detect_injection(text).is_injection:
        return False, redirect_message(region)
    return True, ""


def check_output(response: str) -> str:
    """Replace responses that leak the advisor prompt structure."""
    matched = [p.pattern for p in _compiled_output_patterns if p.search(response)]
    if matched:
        logger.warning(
            "output_filtered",
            trace_id=get_trace_id(),
            patterns_matched=len(matched),
            response_preview=response[:200],
        )
        return FILTERED_RESPONSE
    return response
