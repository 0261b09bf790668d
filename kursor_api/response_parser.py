"""Tolerant parsing of model output into title lists and rankings.

The model is asked for JSON but does not always comply: answers arrive
wrapped in prose, inside code fences, as numbered lists, or truncated. Every
parser here returns a tagged result and never raises.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

logger = structlog.get_logger()

MIN_LINE_LENGTH = 4

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_LIST_MARKER = re.compile(r"^(?:[-*•]\s*|\(?\d{1,3}\s*[.):\]]\s*|#\s*\d{1,3}\s*[.):-]?\s*)+")
_QUOTES = "\"'`“”‘’"

_NAME_KEYS = ("name", "title", "schoolname", "program")
_RATIONALE_KEYS = ("reason", "rationale", "why")


@dataclass
class ParsedTitles:
    """Titles recovered from model output, in the order given."""

    titles: list[str]
    mode: Literal["json", "lines"]


@dataclass
class RawRankedItem:
    """One entry of a model-produced ranking before reconciliation."""

    name: str
    rationale: str = ""


@dataclass
class ParsedRanking:
    """Ranking entries recovered from model output, best first."""

    items: list[RawRankedItem] = field(default_factory=list)
    mode: Literal["json", "lines"] = "json"


@dataclass
class ParseFailed:
    """Nothing usable could be recovered."""

    reason: str

    @property
    def titles(self) -> list[str]:
        return []

    @property
    def items(self) -> list[RawRankedItem]:
        return []

    mode: Literal["failed"] = "failed"


def _extract_json_array(text: str) -> list[Any] | None:
    """Find the outermost bracketed substring and decode it as a JSON list."""
    match = _JSON_ARRAY.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, list) else None


def _first_string(item: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _clean_line(line: str) -> str:
    cleaned = _LIST_MARKER.sub("", line.strip())
    cleaned = cleaned.strip().rstrip(",").strip()
    return cleaned.strip(_QUOTES).strip()


def _split_lines(text: str) -> list[str]:
    """Line-oriented fallback: strip list markers and quotes, drop short lines."""
    lines = []
    for raw_line in text.splitlines():
        if raw_line.strip().startswith("```"):
            continue
        cleaned = _clean_line(raw_line)
        if cleaned in ("[", "]"):
            continue
        if len(cleaned) >= MIN_LINE_LENGTH:
            lines.append(cleaned)
    return lines


def parse_title_list(text: str | None) -> ParsedTitles | ParseFailed:
    """Recover an ordered list of titles from model output.

    Tries JSON-array extraction first, then falls back to one title per line
    when no array is found or the array holds no usable titles.
    """
    if not text or not text.strip():
        return ParseFailed(reason="empty response")

    data = _extract_json_array(text)
    if data is not None:
        titles = []
        for item in data:
            if isinstance(item, str):
                title = item.strip()
            elif isinstance(item, dict):
                title = _first_string(item, _NAME_KEYS)
            else:
                continue
            if title:
                titles.append(title)
        if titles:
            return ParsedTitles(titles=titles, mode="json")

    titles = _split_lines(text)
    if titles:
        logger.info("Title list parsed with line fallback", titles=len(titles))
        return ParsedTitles(titles=titles, mode="lines")

    logger.warning("Unparseable title list", response_preview=text[:100])
    return ParseFailed(reason="no titles found")


def _rank_value(item: Any) -> int | None:
    if not isinstance(item, dict):
        return None
    rank = item.get("rank")
    if isinstance(rank, bool):
        return None
    if isinstance(rank, int):
        return rank
    if isinstance(rank, str) and rank.strip().isdigit():
        return int(rank.strip())
    return None


def parse_ranking(text: str | None) -> ParsedRanking | ParseFailed:
    """Recover an ordered ranking of names (with optional rationale).

    JSON objects may carry an explicit ``rank``; when every entry has one the
    list is ordered by it, otherwise array order is kept.
    """
    if not text or not text.strip():
        return ParseFailed(reason="empty response")

    data = _extract_json_array(text)
    if data is not None:
        ranks = [_rank_value(item) for item in data]
        if data and all(rank is not None for rank in ranks):
            data = [item for _, item in sorted(zip(ranks, data), key=lambda pair: pair[0])]

        items = []
        for entry in data:
            if isinstance(entry, str) and entry.strip():
                items.append(RawRankedItem(name=entry.strip()))
            elif isinstance(entry, dict):
                name = _first_string(entry, _NAME_KEYS)
                if name:
                    items.append(
                        RawRankedItem(name=name, rationale=_first_string(entry, _RATIONALE_KEYS))
                    )
        if items:
            return ParsedRanking(items=items, mode="json")

    names = _split_lines(text)
    if names:
        logger.info("Ranking parsed with line fallback", items=len(names))
        return ParsedRanking(items=[RawRankedItem(name=name) for name in names], mode="lines")

    logger.warning("Unparseable ranking", response_preview=text[:100])
    return ParseFailed(reason="no ranking entries found")
