"""Reconcile free-text program titles against the canonical catalog.

Model output names programs loosely ("BS Nursing", "Computer Science"), so
titles are compared after normalization: first exactly, then by substring
containment in either direction, and finally by substring containment of the
degree-expanded forms ("bs nursing" and "bachelor of science in nursing" both
become "bachelor science nursing"). The first catalog entry (in catalog
order) that satisfies a rule wins.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from kursor_api.models import CatalogEntry

logger = structlog.get_logger()

MAX_MATCHES = 10

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

# Degree abbreviations as they appear in Philippine program listings.
DEGREE_ABBREVIATIONS: dict[str, str] = {
    "bs": "bachelor of science",
    "bsc": "bachelor of science",
    "ba": "bachelor of arts",
    "ab": "bachelor of arts",
    "bsn": "bachelor of science in nursing",
    "bsit": "bachelor of science in information technology",
    "bscs": "bachelor of science in computer science",
    "bsa": "bachelor of science in accountancy",
    "bsba": "bachelor of science in business administration",
    "bsed": "bachelor of secondary education",
    "beed": "bachelor of elementary education",
    "ms": "master of science",
    "msc": "master of science",
    "ma": "master of arts",
    "mba": "master of business administration",
    "bachelors": "bachelor",
    "masters": "master",
}

_FILLER_WORDS = frozenset({"of", "in", "and", "the", "major", "program"})


def normalize(text: str) -> str:
    """Lowercase, drop punctuation, and collapse whitespace.

    Punctuation is removed before whitespace is collapsed so that the result
    is a fixed point: normalize(normalize(x)) == normalize(x).
    """
    lowered = text.lower()
    stripped = _NON_WORD.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def degree_form(normalized: str) -> str:
    """Expand degree abbreviations and drop filler words from a normalized title."""
    words: list[str] = []
    for token in normalized.split():
        expansion = DEGREE_ABBREVIATIONS.get(token, token)
        words.extend(word for word in expansion.split() if word not in _FILLER_WORDS)
    return " ".join(words)


def titles_overlap(left: str, right: str) -> bool:
    """Bidirectional substring containment of two normalized strings."""
    if not left or not right:
        return False
    return left in right or right in left


@dataclass
class MatchOutcome:
    """Matched catalog entries plus diagnostics about what was dropped."""

    entries: list[CatalogEntry] = field(default_factory=list)
    requested: int = 0
    unmatched: list[str] = field(default_factory=list)
    duplicates: int = 0

    @property
    def matched(self) -> int:
        return len(self.entries)


def _find_match(
    candidate: str, normalized_catalog: Sequence[tuple[str, str, CatalogEntry]]
) -> CatalogEntry | None:
    for title, _, entry in normalized_catalog:
        if title and title == candidate:
            return entry
    for title, _, entry in normalized_catalog:
        if titles_overlap(title, candidate):
            return entry
    candidate_degree = degree_form(candidate)
    for _, title_degree, entry in normalized_catalog:
        if titles_overlap(title_degree, candidate_degree):
            return entry
    return None


def match_titles(
    candidate_titles: Sequence[str],
    catalog: Sequence[CatalogEntry],
    limit: int = MAX_MATCHES,
) -> MatchOutcome:
    """Map ranked candidate titles onto catalog entries.

    Args:
        candidate_titles: Titles in ranked order (best first).
        catalog: Canonical entries; iteration order breaks fuzzy ties.
        limit: Maximum number of entries to return.

    Returns:
        MatchOutcome with entries in candidate order, deduplicated by id.
    """
    outcome = MatchOutcome(requested=len(candidate_titles))
    normalized_catalog = []
    for entry in catalog:
        title = normalize(entry.title)
        normalized_catalog.append((title, degree_form(title), entry))
    seen_ids: set[str] = set()

    for raw_title in candidate_titles:
        if len(outcome.entries) >= limit:
            break

        candidate = normalize(raw_title)
        found = _find_match(candidate, normalized_catalog) if candidate else None

        if found is None:
            outcome.unmatched.append(raw_title)
            continue
        if found.id in seen_ids:
            outcome.duplicates += 1
            continue

        seen_ids.add(found.id)
        outcome.entries.append(found)

    if outcome.unmatched:
        logger.info(
            "Catalog match shortfall",
            requested=outcome.requested,
            matched=outcome.matched,
            unmatched=len(outcome.unmatched),
        )

    return outcome
