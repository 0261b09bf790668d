"""RIASEC questionnaire definition.

Each item belongs to exactly one of the six Holland categories. Items are
answered on a 1-5 Likert scale from "Unlikely" to "Likely".
"""

from dataclasses import dataclass
from typing import Literal

TraitCategory = Literal["R", "I", "A", "S", "E", "C"]

# Declaration order; used as the tie-break order when ranking traits.
TRAIT_CATEGORIES: tuple[TraitCategory, ...] = ("R", "I", "A", "S", "E", "C")

TRAIT_NAMES: dict[str, str] = {
    "R": "Realistic",
    "I": "Investigative",
    "A": "Artistic",
    "S": "Social",
    "E": "Enterprising",
    "C": "Conventional",
}

LIKERT_MIN = 1
LIKERT_MAX = 5
LIKERT_LABELS: dict[int, str] = {
    1: "Unlikely",
    2: "Somewhat Unlikely",
    3: "Neutral",
    4: "Likely",
    5: "Very Likely",
}


@dataclass(frozen=True)
class SurveyItem:
    """A single questionnaire statement."""

    id: int
    prompt_text: str
    trait_category: TraitCategory


_ITEMS: tuple[SurveyItem, ...] = (
    # Realistic (R)
    SurveyItem(1, "I like to work on cars.", "R"),
    SurveyItem(2, "I like to build things.", "R"),
    SurveyItem(3, "I enjoy working outdoors.", "R"),
    SurveyItem(4, "I like to repair machines.", "R"),
    SurveyItem(5, "I enjoy using tools.", "R"),
    SurveyItem(6, "I like to work with my hands.", "R"),
    SurveyItem(7, "I prefer practical tasks over theoretical ones.", "R"),
    # Investigative (I)
    SurveyItem(8, "I like to do puzzles.", "I"),
    SurveyItem(9, "I enjoy solving math problems.", "I"),
    SurveyItem(10, "I like to analyze data.", "I"),
    SurveyItem(11, "I am curious about how things work.", "I"),
    SurveyItem(12, "I like to conduct experiments.", "I"),
    SurveyItem(13, "I enjoy researching new ideas.", "I"),
    SurveyItem(14, "I prefer thinking deeply about problems.", "I"),
    # Artistic (A)
    SurveyItem(15, "I like to draw, paint, or do crafts.", "A"),
    SurveyItem(16, "I enjoy writing stories or poems.", "A"),
    SurveyItem(17, "I like to play a musical instrument.", "A"),
    SurveyItem(18, "I enjoy performing arts (acting, dancing, etc.).", "A"),
    SurveyItem(19, "I like to design or decorate things.", "A"),
    SurveyItem(20, "I enjoy expressing myself creatively.", "A"),
    SurveyItem(21, "I prefer unstructured, creative activities.", "A"),
    # Social (S)
    SurveyItem(22, "I like to help people solve their problems.", "S"),
    SurveyItem(23, "I enjoy teaching others.", "S"),
    SurveyItem(24, "I like to volunteer for community service.", "S"),
    SurveyItem(25, "I enjoy working with children or the elderly.", "S"),
    SurveyItem(26, "I am good at listening and supporting others.", "S"),
    SurveyItem(27, "I like to work in groups.", "S"),
    SurveyItem(28, "I prefer helping others rather than working with things.", "S"),
    # Enterprising (E)
    SurveyItem(29, "I like to lead and persuade people.", "E"),
    SurveyItem(30, "I enjoy public speaking.", "E"),
    SurveyItem(31, "I like to sell products or ideas.", "E"),
    SurveyItem(32, "I enjoy starting new projects or businesses.", "E"),
    SurveyItem(33, "I like to compete and win.", "E"),
    SurveyItem(34, "I enjoy convincing people of my viewpoint.", "E"),
    SurveyItem(35, "I prefer taking risks to achieve success.", "E"),
    # Conventional (C)
    SurveyItem(36, "I like to organize files and keep things in order.", "C"),
    SurveyItem(37, "I enjoy working with numbers or financial records.", "C"),
    SurveyItem(38, "I like to follow set procedures and rules.", "C"),
    SurveyItem(39, "I enjoy clerical tasks like typing or filing.", "C"),
    SurveyItem(40, "I like to keep detailed records.", "C"),
    SurveyItem(41, "I enjoy routine, structured tasks.", "C"),
    SurveyItem(42, "I prefer clear instructions over ambiguous tasks.", "C"),
)

_ITEMS_BY_ID: dict[int, SurveyItem] = {item.id: item for item in _ITEMS}


def list_items() -> tuple[SurveyItem, ...]:
    """Return every survey item in presentation order."""
    return _ITEMS


def get_item(item_id: int) -> SurveyItem | None:
    """Look up a survey item by id."""
    return _ITEMS_BY_ID.get(item_id)
