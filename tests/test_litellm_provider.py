"""Tests for LiteLLMProvider and the provider factory."""

import asyncio
from types import SimpleNamespace

import pytest

from inbox_agent.config.schema import Config
from inbox_agent.errors import ConfigurationError
from inbox_agent.providers.factory import build_provider, build_reasoning_client
from inbox_agent.providers.litellm_provider import LiteLLMProvider


def _completion(content: str, finish_reason: str = "stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
    )


def test_chat_forwards_credentials_and_parses_usage(monkeypatch):
    captured: dict = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        return _completion("[]")

    monkeypatch.setattr("inbox_agent.providers.litellm_provider.acompletion", fake_acompletion)
    provider = LiteLLMProvider(api_key="sk-test", api_base="http://localhost:4000", default_model="openai/x")

    response = asyncio.run(provider.chat([{"role": "user", "content": "hi"}], max_tokens=64))

    assert response.content == "[]"
    assert response.usage == {"prompt_tokens": 11, "completion_tokens": 7}
    assert captured["model"] == "openai/x"
    assert captured["api_key"] == "sk-test"
    assert captured["api_base"] == "http://localhost:4000"
    assert captured["max_tokens"] == 64


def test_chat_reports_errors_as_response(monkeypatch):
    async def failing(**_kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr("inbox_agent.providers.litellm_provider.acompletion", failing)
    response = asyncio.run(LiteLLMProvider(api_key="k").chat([]))
    assert response.finish_reason == "error"
    assert "rate limited" in response.content


def test_build_provider_requires_key_for_hosted_models():
    with pytest.raises(ConfigurationError):
        build_provider(Config())


def test_build_provider_allows_keyless_local_models():
    config = Config()
    config.reasoning.model = "ollama/llama3"
    assert build_provider(config).get_default_model() == "ollama/llama3"

    config = Config()
    config.reasoning.api_base = "http://127.0.0.1:8000/v1"
    assert isinstance(build_provider(config), LiteLLMProvider)


def test_build_reasoning_client_uses_reasoning_settings():
    config = Config()
    config.reasoning.api_key = "sk"
    config.reasoning.max_tokens = 300
    client = build_reasoning_client(config)
    assert client.model == "openai/gpt-4o-mini"
    assert client.max_tokens == 300
