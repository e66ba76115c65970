"""Unit tests for writers_room/providers, with the SDK calls mocked."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from config.config_loader import ModelConfig
from writers_room.providers.anthropic import AnthropicClient
from writers_room.providers.base import ErrorKind, ProviderError, kind_from_status
from writers_room.providers.openai_provider import OpenAIClient

MESSAGES = [
    {"role": "system", "content": "You pitch story ideas."},
    {"role": "user", "content": "Topic: a haunted lighthouse"},
]


def _model_config(name: str, sdk: str, model: str) -> ModelConfig:
    return ModelConfig(
        name=name,
        sdk=sdk,
        model=model,
        api_key_env="TEST_PROVIDER_KEY",
        timeout_sec=30,
        max_tokens=512,
    )


@pytest.fixture(autouse=True)
def provider_key(monkeypatch):
    monkeypatch.setenv("TEST_PROVIDER_KEY", "test-key")


@pytest.mark.parametrize(
    "status, kind",
    [
        (None, ErrorKind.UNKNOWN),
        (401, ErrorKind.AUTH),
        (403, ErrorKind.AUTH),
        (408, ErrorKind.TIMEOUT),
        (429, ErrorKind.RATE_LIMIT),
        (400, ErrorKind.BAD_REQUEST),
        (404, ErrorKind.BAD_REQUEST),
        (500, ErrorKind.SERVER),
        (503, ErrorKind.SERVER),
    ],
)
def test_kind_from_status(status, kind):
    assert kind_from_status(status) is kind


def test_missing_key_is_auth_error(monkeypatch):
    monkeypatch.delenv("TEST_PROVIDER_KEY")
    with pytest.raises(ProviderError) as exc_info:
        OpenAIClient(_model_config("openai", "openai", "gpt-4o-mini"))
    assert exc_info.value.kind is ErrorKind.AUTH
    assert "TEST_PROVIDER_KEY" in str(exc_info.value)


async def test_openai_complete_maps_response():
    client = OpenAIClient(_model_config("openai", "openai", "gpt-4o-mini"))
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="A lamp that lies."), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=20, completion_tokens=6, total_tokens=26),
        model="gpt-4o-mini-2024",
    )
    create = AsyncMock(return_value=response)
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    completion = await client.complete("gpt-4o-mini", MESSAGES, 200, temperature=0.9)

    assert completion.content == "A lamp that lies."
    assert completion.usage.total_tokens == 26
    assert completion.model == "gpt-4o-mini-2024"
    kwargs = create.await_args.kwargs
    assert kwargs["messages"] == MESSAGES
    assert kwargs["max_tokens"] == 200
    assert kwargs["temperature"] == 0.9


async def test_openai_empty_choice_is_empty_error():
    client = OpenAIClient(_model_config("openai", "openai", "gpt-4o-mini"))
    create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None, model=None))
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    with pytest.raises(ProviderError) as exc_info:
        await client.complete("gpt-4o-mini", MESSAGES, 200)
    assert exc_info.value.kind is ErrorKind.EMPTY


async def test_anthropic_sends_system_separately():
    client = AnthropicClient(_model_config("claude", "anthropic", "claude-sonnet-4-20250514"))
    response = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="The keeper is the ghost.")],
        usage=SimpleNamespace(input_tokens=30, output_tokens=8),
        stop_reason="end_turn",
        model="claude-sonnet-4-20250514",
    )
    create = AsyncMock(return_value=response)
    client._client = SimpleNamespace(messages=SimpleNamespace(create=create))

    completion = await client.complete("claude-sonnet-4-20250514", MESSAGES, 300)

    kwargs = create.await_args.kwargs
    assert kwargs["system"] == "You pitch story ideas."
    assert kwargs["messages"] == [MESSAGES[1]]
    assert "temperature" not in kwargs
    assert completion.usage.total_tokens == 38
    assert completion.finish_reason == "end_turn"


async def test_anthropic_timeout_is_transient_kind():
    client = AnthropicClient(_model_config("claude", "anthropic", "claude-sonnet-4-20250514"))

    async def hang(**kwargs):
        await asyncio.sleep(10)

    client._client = SimpleNamespace(messages=SimpleNamespace(create=hang))
    client._config.timeout_sec = 0.01

    with pytest.raises(ProviderError) as exc_info:
        await client.complete("claude-sonnet-4-20250514", MESSAGES, 300)
    assert exc_info.value.kind is ErrorKind.TIMEOUT


async def test_unexpected_sdk_error_is_wrapped():
    client = AnthropicClient(_model_config("claude", "anthropic", "claude-sonnet-4-20250514"))
    create = AsyncMock(side_effect=RuntimeError("socket closed"))
    client._client = SimpleNamespace(messages=SimpleNamespace(create=create))

    with pytest.raises(ProviderError) as exc_info:
        await client.complete("claude-sonnet-4-20250514", MESSAGES, 300)
    assert exc_info.value.kind is ErrorKind.UNKNOWN
    assert "socket closed" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RuntimeError)
