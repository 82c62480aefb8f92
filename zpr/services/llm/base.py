"""Model backend interface shared by all providers."""

from typing import Any, Literal, Protocol

from pydantic import BaseModel


class LLMMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class LLMResponse(BaseModel):
    content: str


class ModelBackend(Protocol):
    """A chat model that can be held to a JSON schema.

    chat() returns the raw text of the reply, which is expected to be a JSON
    document conforming to output_schema. Transport and non-success
    responses raise ModelBackendError.
    """

    async def chat(
        self,
        model_name: str,
        messages: list[LLMMessage],
        output_schema: dict[str, Any],
    ) -> LLMResponse: ...

    async def aclose(self) -> None: ...
