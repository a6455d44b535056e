"""Provider factory helpers."""

from __future__ import annotations

from inbox_agent.config.schema import Config
from inbox_agent.errors import ConfigurationError
from inbox_agent.observability.metrics import MetricsStore
from inbox_agent.providers.base import LLMProvider
from inbox_agent.providers.litellm_provider import LiteLLMProvider
from inbox_agent.providers.reasoning import ReasoningClient

_KEYLESS_PREFIXES = ("ollama/", "hosted_vllm/", "vllm/", "bedrock/")


def build_provider(config: Config) -> LLMProvider:
    """Build the LiteLLM provider described by `config.reasoning`."""
    reasoning = config.reasoning
    keyless = reasoning.model.startswith(_KEYLESS_PREFIXES) or bool(reasoning.api_base)
    if not reasoning.api_key and not keyless:
        raise ConfigurationError(
            f"No API key configured for reasoning model '{reasoning.model}'. "
            "Set reasoning.apiKey in config.json or INBOX_AGENT_REASONING__API_KEY."
        )
    return LiteLLMProvider(
        api_key=reasoning.api_key or None,
        api_base=reasoning.api_base,
        default_model=reasoning.model,
    )


def build_reasoning_client(
    config: Config,
    *,
    provider: LLMProvider | None = None,
    metrics: MetricsStore | None = None,
) -> ReasoningClient:
    """Build the reasoning client, optionally around a caller-supplied provider."""
    return ReasoningClient(
        provider or build_provider(config),
        model=config.reasoning.model,
        max_tokens=config.reasoning.max_tokens,
        temperature=config.reasoning.temperature,
        metrics=metrics,
    )
