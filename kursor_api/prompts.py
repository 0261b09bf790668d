"""Prompt templates for recommendation, ranking, and advisor chat."""

from collections.abc import Sequence

from kursor_api.models import CatalogEntry, Institution
from kursor_api.survey import TRAIT_NAMES

RECOMMENDATION_SYSTEM_PROMPT = (
    "You are a strict recommendation system for college programs. "
    "You only ever answer with a JSON array of program titles."
)

RECOMMENDATION_PROMPT = """Your task is to select EXACTLY {count} programs from the list below.

Rules:
1. You MUST only choose titles from the provided list. Never invent new programs.
2. Copy each title verbatim, exactly as written in the list.
3. Rank programs by how well their RIASEC tags and description fit the RIASEC code.
4. A tag matches if it appears in the RIASEC code (case-insensitive). Prefer programs with more matching tags.
5. If fewer than {count} programs match, fill the remaining slots with the closest matches (still from the list).

RIASEC Code: {trait_code} ({trait_names})

Programs:
{programs}

Output format:
Return ONLY a valid JSON array of {count} title strings, best match first.
Do NOT include explanations, reasoning, or extra text."""

RANKING_SYSTEM_PROMPT = (
    "You are an assistant that ranks universities. You only ever answer with JSON."
)

RANKING_PROMPT = """List the top {count} universities in {region} according to the latest information you have
(for example the EduRank rankings).

Prefer the exact names used in this list of known institutions when they apply:
{institutions}

Return ONLY a valid JSON array in this format:
[
  {{ "rank": 1, "name": "University Name", "reason": "Short reason why it is ranked highly" }}
]

Rules:
- Include only universities in {region}.
- Rank them from 1 (highest) to {count} (lowest).
- Return ONLY JSON, no extra text."""

ADVISOR_SYSTEM_PROMPT = """You are a knowledgeable career advisor focused on universities, colleges, and programs in {region}.
You can answer questions about:
- Schools and universities in {region}
- Available courses and programs
- Degree descriptions
- Career paths related to courses

Rules:
1. Answer questions about schools and courses using your knowledge and the database info.
2. If the question is outside this domain, politely refuse.
3. Provide useful, accurate, and concise answers.
4. Include helpful details like course description, career tips, or school location when relevant."""

ADVISOR_PROMPT = """Database info:
{schools}

User Question:
{question}"""


def _format_tags(tags: Sequence[str]) -> str:
    return ", ".join(tags) if tags else "none"


def build_recommendation_prompt(
    trait_code: str, programs: Sequence[CatalogEntry], count: int = 10
) -> str:
    """Build the program-selection prompt enumerating the full catalog."""
    lines = []
    for idx, program in enumerate(programs, start=1):
        line = f'{idx}. "{program.title}" | School: {program.affiliation_name or "unknown"}'
        line += f" | Tags: {_format_tags(program.trait_tags)}"
        if program.description:
            line += f" | Description: {' '.join(program.description.split())}"
        lines.append(line)

    return RECOMMENDATION_PROMPT.format(
        count=count,
        trait_code=trait_code,
        trait_names=", ".join(TRAIT_NAMES[letter] for letter in trait_code),
        programs="\n".join(lines),
    )


def build_ranking_prompt(institutions: Sequence[Institution], region: str, count: int = 10) -> str:
    """Build the institution-ranking prompt."""
    names = "\n".join(f'- "{institution.name}"' for institution in institutions)
    return RANKING_PROMPT.format(count=count, region=region, institutions=names or "- (none)")


def build_advisor_prompt(question: str, institutions: Sequence[Institution]) -> str:
    """Build the advisor chat user prompt with school context."""
    if institutions:
        schools = "\n".join(
            f"{school.name}: {school.location or 'location unknown'}: {school.description}".rstrip(": ")
            for school in institutions
        )
    else:
        schools = "No additional database info available."
    return ADVISOR_PROMPT.format(schools=schools, question=question)
