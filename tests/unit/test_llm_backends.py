"""Unit tests for the model backends."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError

from zpr.config.settings import Settings
from zpr.errors import ModelBackendError
from zpr.models.review import REVIEW_ISSUES_SCHEMA
from zpr.services.llm import OllamaBackend, OpenAIBackend, create_model_backend
from zpr.services.llm.base import LLMMessage
from zpr.services.llm.openai import unwrap_content, wrap_schema

MESSAGES = [
    LLMMessage(role="system", content="You review code."),
    LLMMessage(role="user", content="```diff\n+x = 2\n```"),
]


# === Ollama ===


@pytest.mark.asyncio
async def test_ollama_sends_schema_and_options():
    seen: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "[]"}})

    backend = OllamaBackend(
        "http://ollama:11434/",
        api_key="secret",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    response = await backend.chat("qwen2.5-coder:14b", MESSAGES, REVIEW_ISSUES_SCHEMA)

    request = seen["request"]
    body = json.loads(request.content)
    assert str(request.url) == "http://ollama:11434/api/chat"
    assert request.headers["Authorization"] == "Bearer secret"
    assert body["model"] == "qwen2.5-coder:14b"
    assert body["stream"] is False
    assert body["think"] is False
    assert body["format"] == REVIEW_ISSUES_SCHEMA
    assert body["options"] == {"temperature": 0.2, "num_ctx": 8192}
    assert body["messages"][0] == {"role": "system", "content": "You review code."}
    assert response.content == "[]"


@pytest.mark.asyncio
async def test_ollama_non_success_carries_status():
    backend = OllamaBackend(
        "http://ollama:11434",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
        ),
    )

    with pytest.raises(ModelBackendError) as exc_info:
        await backend.chat("m", MESSAGES, REVIEW_ISSUES_SCHEMA)

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_ollama_unexpected_body():
    backend = OllamaBackend(
        "http://ollama:11434",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        ),
    )

    with pytest.raises(ModelBackendError, match="Unexpected Ollama response"):
        await backend.chat("m", MESSAGES, REVIEW_ISSUES_SCHEMA)


@pytest.mark.asyncio
async def test_ollama_null_content():
    backend = OllamaBackend(
        "http://ollama:11434",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"message": {"content": None}})
            )
        ),
    )

    with pytest.raises(ModelBackendError, match="non-text content"):
        await backend.chat("m", MESSAGES, REVIEW_ISSUES_SCHEMA)


# === OpenAI ===


def test_wrap_schema_moves_defs_to_root():
    wrapped = wrap_schema(REVIEW_ISSUES_SCHEMA)

    assert wrapped["type"] == "object"
    assert wrapped["required"] == ["issues"]
    assert wrapped["properties"]["issues"]["type"] == "array"
    assert "$defs" not in wrapped["properties"]["issues"]
    assert "ReviewIssue" in wrapped["$defs"]


def test_unwrap_content():
    assert json.loads(unwrap_content('{"issues": [{"a": 1}]}')) == [{"a": 1}]
    assert unwrap_content("[]") == "[]"
    assert unwrap_content("not json") == "not json"


def make_openai_client(content: str | None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        )
    )
    return client


@pytest.mark.asyncio
async def test_openai_requests_json_schema_and_unwraps():
    client = make_openai_client('{"issues": []}')
    backend = OpenAIBackend(api_key="sk-test", client=client)

    response = await backend.chat("gpt-4o-mini", MESSAGES, REVIEW_ISSUES_SCHEMA)

    assert response.content == "[]"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["response_format"]["json_schema"]["schema"]["required"] == ["issues"]
    assert kwargs["messages"][1]["role"] == "user"


@pytest.mark.asyncio
async def test_openai_empty_content():
    backend = OpenAIBackend(api_key="sk-test", client=make_openai_client(None))

    with pytest.raises(ModelBackendError, match="no content"):
        await backend.chat("gpt-4o-mini", MESSAGES, REVIEW_ISSUES_SCHEMA)


@pytest.mark.asyncio
async def test_openai_connection_error():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        side_effect=APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
    )
    backend = OpenAIBackend(api_key="sk-test", client=client)

    with pytest.raises(ModelBackendError, match="OpenAI request failed"):
        await backend.chat("gpt-4o-mini", MESSAGES, REVIEW_ISSUES_SCHEMA)


# === Provider selection ===


def test_create_model_backend_selects_provider():
    ollama = create_model_backend(Settings(_env_file=None, llm_provider="ollama"))
    openai_backend = create_model_backend(
        Settings(
            _env_file=None,
            llm_provider="openai",
            llm_api_key="sk-test",
            llm_base_url="http://llm/v1",
        )
    )

    assert isinstance(ollama, OllamaBackend)
    assert ollama.context_window == 8192
    assert isinstance(openai_backend, OpenAIBackend)


@pytest.mark.asyncio
async def test_backends_close_their_clients():
    openai_client = make_openai_client("[]")
    openai_client.close = AsyncMock()
    await OpenAIBackend(api_key="sk-test", client=openai_client).aclose()
    openai_client.close.assert_awaited_once()

    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )
    await OllamaBackend("http://ollama:11434", http_client=http_client).aclose()
    assert http_client.is_closed
