"""Reasoning client: conversation in, parsed step array out."""

from __future__ import annotations

import json
import re
from time import perf_counter
from typing import Any

from loguru import logger

from inbox_agent.errors import ReasoningError, StepParseError
from inbox_agent.observability.metrics import MetricsStore
from inbox_agent.providers.base import LLMProvider

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def parse_steps(raw: str | None) -> list[dict[str, Any]]:
    """
    Parse a reasoning response into a list of step objects.

    One surrounding Markdown code fence is tolerated; anything other than a
    JSON array of objects raises StepParseError.
    """
    text = (raw or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()
    if not text:
        raise StepParseError("Reasoning response is empty", raw=raw or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StepParseError(f"Reasoning response is not valid JSON: {e}", raw=raw or "") from e
    if not isinstance(data, list):
        raise StepParseError(
            f"Reasoning response must be a JSON array, got {type(data).__name__}", raw=raw or ""
        )
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise StepParseError(f"Step {index} is not an object", raw=raw or "")
    return data


class ReasoningClient:
    """Ask the reasoning service for the steps to execute for one batch."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
        metrics: MetricsStore | None = None,
    ):
        self.provider = provider
        self.model = model or provider.get_default_model()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.metrics = metrics

    def _record(self, *, success: bool, started: float, steps: int = 0, error: str = "") -> None:
        if self.metrics is None:
            return
        self.metrics.record_reasoning_call(
            model=self.model,
            success=success,
            latency_ms=(perf_counter() - started) * 1000.0,
            steps=steps,
            error=error,
        )

    async def get_steps(self, conversation: list[dict[str, str]]) -> list[dict[str, Any]]:
        """
        Send the conversation and return the parsed step array.

        Raises:
            ReasoningError: the provider answered with an error.
            StepParseError: the answer is not a JSON array of objects.
        """
        started = perf_counter()
        response = await self.provider.chat(
            messages=conversation,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if response.finish_reason == "error":
            error_text = response.content or "unknown error"
            self._record(success=False, started=started, error=error_text)
            raise ReasoningError(f"Reasoning service failed: {error_text}", body=error_text)

        try:
            steps = parse_steps(response.content)
        except StepParseError as e:
            self._record(success=False, started=started, error=str(e))
            raise

        self._record(success=True, started=started, steps=len(steps))
        logger.debug(f"Reasoning service returned {len(steps)} step(s) from {self.model}")
        return steps
