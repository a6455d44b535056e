"""Agent loop: flushed batch -> conversation -> steps -> dispatch."""

from __future__ import annotations

from loguru import logger

from inbox_agent.agent.aggregator import Fragment
from inbox_agent.agent.context import ConversationBuilder, UserContextStore
from inbox_agent.agent.dispatcher import DispatchReport, StepDispatcher
from inbox_agent.config.schema import DEFAULT_SYSTEM_PROMPT
from inbox_agent.errors import ReasoningError, StepParseError
from inbox_agent.modules.registry import ModuleRegistry
from inbox_agent.observability.metrics import MetricsStore
from inbox_agent.providers.reasoning import ReasoningClient


class AgentLoop:
    """
    The agent loop is the core processing engine.

    For every batch flushed by a module's aggregator it:
    1. Builds the conversation (instructions, context, batch)
    2. Asks the reasoning service for steps
    3. Dispatches the steps to module handlers
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        reasoning: ReasoningClient,
        *,
        system_prompt: str | None = None,
        metrics: MetricsStore | None = None,
    ):
        self.registry = registry
        self.reasoning = reasoning
        self.metrics = metrics
        self.contexts = UserContextStore(registry.store)
        self.builder = ConversationBuilder(
            registry, self.contexts, system_prompt=system_prompt or DEFAULT_SYSTEM_PROMPT
        )
        self.dispatcher = StepDispatcher(registry, self.contexts, metrics=metrics)

    async def handle_batch(
        self, module_name: str, user_id: str, fragments: list[Fragment]
    ) -> DispatchReport | None:
        """
        Process one flushed batch.

        Returns None when the reasoning service failed and the cycle was aborted.
        """
        if self.metrics is not None:
            self.metrics.record_flush(module=module_name, fragments=len(fragments))

        conversation = self.builder.build(module_name, user_id, fragments)
        try:
            steps = await self.reasoning.get_steps(conversation)
        except StepParseError as e:
            logger.error(f"Unparseable reasoning response for {user_id} ({module_name}): {e}")
            steps = []
        except ReasoningError as e:
            logger.error(f"Reasoning failed for {user_id} ({module_name}); dropping batch: {e}")
            return None

        report = await self.dispatcher.dispatch(module_name, user_id, steps)
        logger.info(
            f"Batch for {user_id} ({module_name}): {report.executed} executed, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        return report
