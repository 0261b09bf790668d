"""Career advisor chat grounded on the institution catalog."""

from dataclasses import dataclass

import structlog

from kursor_api.catalog import CatalogReader, CatalogUnavailableError
from kursor_api.config import get_settings
from kursor_api.guardrails import check_input, check_output
from kursor_api.openrouter_client import OpenRouterClient
from kursor_api.prompts import ADVISOR_SYSTEM_PROMPT, build_advisor_prompt

logger = structlog.get_logger()


@dataclass
class AdvisorAnswer:
    answer: str
    tokens_used: int = 0
    blocked: bool = False


class AdvisorService:
    """Answers free-form questions about schools, programs, and careers."""

    def __init__(self, catalog: CatalogReader, generator: OpenRouterClient):
        settings = get_settings()
        self._catalog = catalog
        self._generator = generator
        self._region = settings.ranking_region
        self._timeout = settings.generation_timeout_seconds

    async def ask(self, question: str) -> AdvisorAnswer:
        """Answer a question.

        Blocked questions short-circuit without a model call. A catalog that
        cannot be read only drops the school context from the prompt.

        Raises:
            GenerationError: If the model call fails.
        """
        is_safe, blocked_response = check_input(question, region=self._region)
        if not is_safe:
            return AdvisorAnswer(answer=blocked_response, blocked=True)

        try:
            institutions = await self._catalog.fetch_all_institutions()
        except CatalogUnavailableError as e:
            logger.warning("Advisor running without school context", error=str(e))
            institutions = []

        response = await self._generator.generate(
            build_advisor_prompt(question, institutions),
            timeout=self._timeout,
            system_prompt=ADVISOR_SYSTEM_PROMPT.format(region=self._region),
            purpose="advisor",
        )
        return AdvisorAnswer(answer=check_output(response.content.strip()), tokens_used=response.tokens_used)
