import asyncio
from typing import Any

import pytest

from inbox_agent.errors import ReasoningError, StepParseError
from inbox_agent.observability.metrics import MetricsStore
from inbox_agent.providers.base import LLMProvider, LLMResponse
from inbox_agent.providers.reasoning import ReasoningClient, parse_steps


class DummyProvider(LLMProvider):
    def __init__(self, content: str, finish_reason: str = "stop"):
        super().__init__()
        self.content = content
        self.finish_reason = finish_reason
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        return LLMResponse(content=self.content, finish_reason=self.finish_reason)

    def get_default_model(self) -> str:
        return "dummy-model"


def test_parse_steps_accepts_plain_and_fenced_arrays():
    assert parse_steps('[{"action": "ANSWER", "message": "hi"}]') == [{"action": "ANSWER", "message": "hi"}]
    assert parse_steps('```json\n[{"action": "ANSWER"}]\n```') == [{"action": "ANSWER"}]
    assert parse_steps("  []  ") == []


@pytest.mark.parametrize(
    "raw",
    ["", "Sure! Here you go", '{"action": "ANSWER"}', '["ANSWER"]', "```\n```"],
)
def test_parse_steps_rejects_non_step_arrays(raw):
    with pytest.raises(StepParseError):
        parse_steps(raw)


def test_get_steps_passes_conversation_and_records_metrics(tmp_path):
    provider = DummyProvider('[{"action": "ANSWER", "message": "hello"}]')
    metrics = MetricsStore(tmp_path / "events.jsonl")
    client = ReasoningClient(provider, max_tokens=512, metrics=metrics)
    conversation = [{"role": "system", "content": "x"}, {"role": "user", "content": "[]"}]

    steps = asyncio.run(client.get_steps(conversation))

    assert steps == [{"action": "ANSWER", "message": "hello"}]
    assert provider.calls[0]["messages"] == conversation
    assert provider.calls[0]["model"] == "dummy-model"
    assert provider.calls[0]["max_tokens"] == 512
    snap = metrics.snapshot(hours=1)
    assert snap["reasoning"]["calls"] == 1
    assert snap["reasoning"]["success"] == 1


def test_get_steps_raises_on_provider_error():
    client = ReasoningClient(DummyProvider("Error calling LLM: timeout", finish_reason="error"))
    with pytest.raises(ReasoningError):
        asyncio.run(client.get_steps([]))


def test_get_steps_raises_parse_error_on_prose(tmp_path):
    metrics = MetricsStore(tmp_path / "events.jsonl")
    client = ReasoningClient(DummyProvider("I think you should answer politely."), metrics=metrics)
    with pytest.raises(StepParseError):
        asyncio.run(client.get_steps([]))
    assert metrics.snapshot(hours=1)["reasoning"]["errors"] == 1
