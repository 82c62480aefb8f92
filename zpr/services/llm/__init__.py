"""Model backends and provider selection."""

from zpr.config.settings import Settings

from .base import LLMMessage, LLMResponse, ModelBackend
from .ollama import OllamaBackend
from .openai import OpenAIBackend


def create_model_backend(settings: Settings) -> ModelBackend:
    """Build the model backend selected by settings.llm_provider."""
    if settings.llm_provider == "ollama":
        return OllamaBackend(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            temperature=settings.review_temperature,
            context_window=settings.llm_context_window,
        )
    if settings.llm_provider == "openai":
        return OpenAIBackend(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            temperature=settings.review_temperature,
        )
    raise ValueError(f"invalid llm provider type: {settings.llm_provider!r}")


__all__ = [
    "LLMMessage",
    "LLMResponse",
    "ModelBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "create_model_backend",
]
