"""OpenRouter LLM client used as the generative text function."""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from kursor_api.config import get_settings
from kursor_api.observability import log_generation_request, log_generation_response

logger = structlog.get_logger()

_QUOTED_LIST_ITEM = re.compile(r'^\s*(?:\d+\.|-)\s*"([^"]+)"', re.MULTILINE)


class GenerationError(Exception):
    """Base exception for failures of the generative step."""

    pass


class OpenRouterError(GenerationError):
    """Base exception for OpenRouter client errors."""

    pass


class OpenRouterAuthError(OpenRouterError):
    """Raised when authentication fails."""

    pass


class OpenRouterRateLimitError(OpenRouterError):
    """Raised when rate limit or quota is exceeded."""

    pass


class OpenRouterTimeoutError(OpenRouterError):
    """Raised when a completion does not finish within the caller's timeout."""

    pass


@dataclass
class LLMResponse:
    """Non-streaming response from the LLM."""

    content: str
    tokens_used: int
    finish_reason: str | None = None


class OpenRouterClient:
    """Async client for the OpenRouter chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        """Initialize the OpenRouter client.

        Args:
            api_key: OpenRouter API key. Defaults to config value.
            base_url: API base URL. Defaults to config value.
            model: Model ID to use. Defaults to config value.
            max_tokens: Maximum tokens in response. Defaults to config value.
            temperature: Sampling temperature. Defaults to config value.
        """
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.openrouter_api_key
        self._base_url = base_url or settings.openrouter_base_url
        self._model = model or settings.llm_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "OpenRouterClient":
        """Enter async context."""
        await self.connect()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_configured(self) -> bool:
        """Check if the client is properly configured with an API key."""
        return bool(self._api_key and self._api_key.startswith("sk-"))

    async def connect(self) -> None:
        """Create the HTTP client.

        In mock mode without a key, no HTTP client is created since every
        request is served by the mock handler.
        """
        settings = get_settings()
        if settings.mock_openrouter and not self.is_configured:
            logger.info("OpenRouter client in mock mode, skipping HTTP client creation")
            return

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "X-Title": "Kursor",
            },
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
        logger.info("OpenRouter client connected", model=self._model)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("OpenRouter client closed")

    def _build_messages(self, prompt: str, system_prompt: str | None) -> list[dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate(
        self,
        prompt: str,
        timeout: float | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
        purpose: str = "generate",
    ) -> LLMResponse:
        """Run one completion: prompt in, free text out.

        Args:
            prompt: User prompt text.
            timeout: Upper bound in seconds for the whole call. None waits for
                the HTTP client's own timeout.
            system_prompt: Optional system instructions.
            temperature: Overrides the configured sampling temperature.
            purpose: Label for logs and metrics (e.g. "recommend").

        Returns:
            LLM response with content and token usage.

        Raises:
            OpenRouterTimeoutError: If the call exceeds ``timeout``.
            OpenRouterAuthError: If no key is configured outside mock mode, or
                the key is rejected.
            OpenRouterRateLimitError: On HTTP 429.
            OpenRouterError: On any other transport, HTTP, or payload failure.
        """
        settings = get_settings()

        # Fail loudly if real implementation unavailable
        if not self.is_configured:
            if settings.mock_openrouter:
                logger.info("MOCK_OPENROUTER=true: Using mock LLM response", purpose=purpose)
                return self._mock_generate(prompt)
            error_msg = (
                "OpenRouter API key not configured with MOCK_OPENROUTER=false. "
                "Either set OPENROUTER_API_KEY or set MOCK_OPENROUTER=true for testing."
            )
            logger.error(error_msg)
            raise OpenRouterAuthError(error_msg)

        if not self._client:
            await self.connect()

        request_log = log_generation_request(
            model=self._model, purpose=purpose, prompt=prompt, timeout_seconds=timeout
        )
        try:
            if timeout is None:
                response = await self._complete(prompt, system_prompt, temperature)
            else:
                response = await asyncio.wait_for(
                    self._complete(prompt, system_prompt, temperature), timeout=timeout
                )
        except asyncio.TimeoutError as e:
            log_generation_response(request_log, error=f"timeout after {timeout}s")
            raise OpenRouterTimeoutError(f"Generation timed out after {timeout}s") from e
        except OpenRouterError as e:
            log_generation_response(request_log, error=str(e))
            raise
        except asyncio.CancelledError:
            log_generation_response(request_log, error="cancelled")
            raise

        log_generation_response(
            request_log,
            tokens_total=response.tokens_used,
            finish_reason=response.finish_reason or "stop",
        )
        return response

    async def _complete(
        self, prompt: str, system_prompt: str | None, temperature: float | None
    ) -> LLMResponse:
        assert self._client is not None
        payload = {
            "model": self._model,
            "messages": self._build_messages(prompt, system_prompt),
            "max_tokens": self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
            "stream": False,
        }

        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise
        except httpx.HTTPError as e:
            raise OpenRouterError(f"Request failed: {e}") from e

        try:
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
            tokens_used = (data.get("usage") or {}).get("total_tokens", 0)
            finish_reason = choice.get("finish_reason")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OpenRouterError(f"Malformed completion payload: {e}") from e

        return LLMResponse(content=content, tokens_used=tokens_used, finish_reason=finish_reason)

    def _handle_http_error(self, error: httpx.HTTPStatusError) -> None:
        """Translate HTTP errors from OpenRouter into client exceptions."""
        status = error.response.status_code
        try:
            detail = error.response.json().get("error", {}).get("message", str(error))
        except Exception:
            detail = str(error)

        logger.error("OpenRouter API error", status=status, detail=detail)

        if status == 401:
            raise OpenRouterAuthError(f"Authentication failed: {detail}") from error
        elif status == 429:
            raise OpenRouterRateLimitError(f"Rate limit exceeded: {detail}") from error
        else:
            raise OpenRouterError(f"API error ({status}): {detail}") from error

    def _mock_generate(self, prompt: str) -> LLMResponse:
        """Return a deterministic mock completion.

        Prompts that enumerate quoted names get the first ten echoed back as
        JSON, so recommendation and ranking flows work without a key.
        """
        names = _QUOTED_LIST_ITEM.findall(prompt)[:10]
        if names and '"rank"' in prompt:
            content = json.dumps(
                [
                    {"rank": idx, "name": name, "reason": "Mock ranking (MOCK_OPENROUTER=true)"}
                    for idx, name in enumerate(names, start=1)
                ]
            )
        elif names:
            content = json.dumps(names)
        else:
            content = (
                "This is a mock advisor response (MOCK_OPENROUTER=true). "
                "Set OPENROUTER_API_KEY to enable real answers."
            )
        return LLMResponse(content=content, tokens_used=50, finish_reason="stop")


# Global client instance
_openrouter_client: OpenRouterClient | None = None


async def get_openrouter_client() -> OpenRouterClient:
    """Get or create the global OpenRouter client instance."""
    global _openrouter_client
    if _openrouter_client is None:
        _openrouter_client = OpenRouterClient()
        await _openrouter_client.connect()
    return _openrouter_client


async def close_openrouter_client() -> None:
    """Close the global OpenRouter client."""
    global _openrouter_client
    if _openrouter_client:
        await _openrouter_client.close()
        _openrouter_client = None


def reset_openrouter_client() -> None:
    """Reset the global OpenRouter client (for testing)."""
    global _openrouter_client
    _openrouter_client = None
