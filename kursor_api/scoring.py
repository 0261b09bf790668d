"""RIASEC scoring: answers to trait totals, trait totals to a 3-letter code.

Only agreement counts. An answer of 4 ("Likely") or 5 ("Very Likely") adds
its raw value to the item's category; anything lower adds nothing.
"""

from collections.abc import Mapping

from kursor_api.survey import LIKERT_MAX, LIKERT_MIN, TRAIT_CATEGORIES, get_item, list_items

LIKELY_THRESHOLD = 4
TRAIT_CODE_LENGTH = 3


class InvalidAnswerError(ValueError):
    """Raised when an answer set references unknown items or out-of-range values."""

    pass


class InvalidTraitCodeError(ValueError):
    """Raised when a trait code is not three distinct RIASEC letters."""

    pass


def validate_answers(answers: Mapping[int, int]) -> None:
    """Reject answers for unknown items or values outside the Likert scale.

    Raises:
        InvalidAnswerError: On the first offending entry.
    """
    for item_id, value in answers.items():
        if get_item(item_id) is None:
            raise InvalidAnswerError(f"Unknown survey item: {item_id}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAnswerError(f"Answer for item {item_id} must be an integer")
        if not LIKERT_MIN <= value <= LIKERT_MAX:
            raise InvalidAnswerError(
                f"Answer for item {item_id} must be between {LIKERT_MIN} and {LIKERT_MAX}"
            )


def score(answers: Mapping[int, int]) -> dict[str, int]:
    """Reduce an answer set to per-category totals.

    Unanswered items are skipped. An empty answer set yields all zeros.
    """
    scores = {category: 0 for category in TRAIT_CATEGORIES}
    for item in list_items():
        value = answers.get(item.id)
        if value is not None and value >= LIKELY_THRESHOLD:
            scores[item.trait_category] += value
    return scores


def rank(scores: Mapping[str, int]) -> str:
    """Derive the trait code from category totals.

    Categories are ordered by score descending; ties keep declaration order
    (R, I, A, S, E, C). Missing categories count as zero.
    """
    ordered = sorted(
        TRAIT_CATEGORIES,
        key=lambda category: (-scores.get(category, 0), TRAIT_CATEGORIES.index(category)),
    )
    return "".join(ordered[:TRAIT_CODE_LENGTH])


def validate_trait_code(code: str | None) -> str:
    """Normalize and validate a trait code.

    Returns:
        The upper-cased code.

    Raises:
        InvalidTraitCodeError: If the code is missing, the wrong length, or
            repeats or contains letters outside RIASEC.
    """
    if not code or not code.strip():
        raise InvalidTraitCodeError("Missing trait code")

    normalized = code.strip().upper()
    if len(normalized) != TRAIT_CODE_LENGTH:
        raise InvalidTraitCodeError(
            f"Trait code must have exactly {TRAIT_CODE_LENGTH} letters: {code!r}"
        )
    if any(letter not in TRAIT_CATEGORIES for letter in normalized):
        raise InvalidTraitCodeError(f"Trait code may only use R, I, A, S, E, C: {code!r}")
    if len(set(normalized)) != TRAIT_CODE_LENGTH:
        raise InvalidTraitCodeError(f"Trait code letters must be distinct: {code!r}")
    return normalized
