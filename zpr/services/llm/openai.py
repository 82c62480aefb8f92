"""OpenAI-compatible chat completions backend."""

import json
import logging
from typing import Any

from openai import APIError, APIStatusError, AsyncOpenAI

from zpr.errors import ModelBackendError
from zpr.services.llm.base import LLMMessage, LLMResponse

logger = logging.getLogger(__name__)

# Structured outputs require an object at the top level
WRAPPER_KEY = "issues"


def wrap_schema(output_schema: dict[str, Any]) -> dict[str, Any]:
    """Nest a schema under a single object property, keeping $defs at the root."""
    inner = dict(output_schema)
    defs = inner.pop("$defs", None)
    wrapped: dict[str, Any] = {
        "type": "object",
        "properties": {WRAPPER_KEY: inner},
        "required": [WRAPPER_KEY],
    }
    if defs:
        wrapped["$defs"] = defs
    return wrapped


def unwrap_content(content: str) -> str:
    """Return the JSON of the wrapped value, or the content unchanged if it is not wrapped."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return content
    if isinstance(parsed, dict) and WRAPPER_KEY in parsed:
        return json.dumps(parsed[WRAPPER_KEY])
    return content


class OpenAIBackend:
    """Chat completions with a json_schema response format."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        temperature: float = 0.2,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def aclose(self) -> None:
        await self._client.close()

    async def chat(
        self,
        model_name: str,
        messages: list[LLMMessage],
        output_schema: dict[str, Any],
    ) -> LLMResponse:
        try:
            completion = await self._client.chat.completions.create(
                model=model_name,
                messages=[m.model_dump() for m in messages],  # type: ignore[misc]
                temperature=self.temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "review_issues",
                        "schema": wrap_schema(output_schema),
                    },
                },
            )
        except APIStatusError as e:
            raise ModelBackendError(
                f"OpenAI returned {e.status_code}: {e.message}",
                status_code=e.status_code,
            ) from e
        except APIError as e:
            raise ModelBackendError(f"OpenAI request failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if content is None:
            raise ModelBackendError(f"OpenAI {model_name} returned no content")

        logger.debug(f"OpenAI {model_name} replied with {len(content)} characters")
        return LLMResponse(content=unwrap_content(content))
