"""Ollama chat backend."""

import logging
from typing import Any

import httpx

from zpr.errors import ModelBackendError
from zpr.services.llm.base import LLMMessage, LLMResponse

logger = logging.getLogger(__name__)


class OllamaBackend:
    """Calls Ollama's /api/chat with a JSON schema in the format field."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        temperature: float = 0.2,
        context_window: int = 8192,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.context_window = context_window
        # No timeout: a review of a large diff can take minutes
        self._http_client = http_client or httpx.AsyncClient(timeout=None)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def chat(
        self,
        model_name: str,
        messages: list[LLMMessage],
        output_schema: dict[str, Any],
    ) -> LLMResponse:
        payload = {
            "model": model_name,
            "messages": [m.model_dump() for m in messages],
            "stream": False,
            "think": False,
            "format": output_schema,
            "options": {
                "temperature": self.temperature,
                "num_ctx": self.context_window,
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            response = await self._http_client.post(
                f"{self.base_url}/api/chat", json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise ModelBackendError(f"Ollama request failed: {e}") from e

        if not response.is_success:
            raise ModelBackendError(
                f"Ollama returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise ModelBackendError(f"Unexpected Ollama response: {e}") from e
        if not isinstance(content, str):
            raise ModelBackendError(
                f"Ollama {model_name} returned non-text content: {content!r}"
            )

        logger.debug(f"Ollama {model_name} replied with {len(content)} characters")
        return LLMResponse(content=content)
