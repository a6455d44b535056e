"""LLM provider abstraction module."""

from inbox_agent.providers.base import LLMProvider, LLMResponse
from inbox_agent.providers.factory import build_provider, build_reasoning_client
from inbox_agent.providers.litellm_provider import LiteLLMProvider
from inbox_agent.providers.reasoning import ReasoningClient, parse_steps

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "ReasoningClient",
    "build_provider",
    "build_reasoning_client",
    "parse_steps",
]
