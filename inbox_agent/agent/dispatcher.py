"""Step dispatcher: execute reasoning steps against module handlers."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from inbox_agent.agent.context import UserContextStore
from inbox_agent.errors import ConfigurationError, UpstreamError
from inbox_agent.modules.registry import ModuleRegistry
from inbox_agent.observability.metrics import MetricsStore

ANSWER = "ANSWER"
UPDATE_USER_CONTEXT = "UPDATE_USER_CONTEXT"
SEND_MESSAGE_ACTION = "sendMessage"


class DispatcherState(str, Enum):
    AWAITING = "awaiting_steps"
    EXECUTING = "executing_steps"


@dataclass
class DispatchReport:
    """Outcome counts for one dispatched batch."""

    executed: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.executed + self.failed + self.skipped


class StepDispatcher:
    """
    Execute steps sequentially in array order.

    A failing step is logged and does not abort the rest of the batch.
    Unknown actions are skipped with a warning.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        contexts: UserContextStore,
        *,
        metrics: MetricsStore | None = None,
    ):
        self.registry = registry
        self.contexts = contexts
        self.metrics = metrics
        self._active = 0

    @property
    def state(self) -> DispatcherState:
        return DispatcherState.EXECUTING if self._active else DispatcherState.AWAITING

    async def dispatch(self, module_name: str, user_id: str, steps: list[dict[str, Any]]) -> DispatchReport:
        report = DispatchReport()
        self._active += 1
        try:
            for index, step in enumerate(steps):
                action = str(step.get("action", "")) if isinstance(step, dict) else ""
                try:
                    outcome = await self._dispatch_step(module_name, user_id, step)
                except ConfigurationError as e:
                    logger.error(f"Step {index} ({action}) for {user_id} skipped: {e}")
                    outcome = "failed"
                except UpstreamError as e:
                    logger.error(
                        f"Step {index} ({action}) for {user_id} failed upstream: "
                        f"status={e.status} body={e.body[:500]}"
                    )
                    outcome = "failed"
                except Exception as e:
                    logger.error(f"Step {index} ({action}) for {user_id} failed: {e}")
                    outcome = "failed"

                if outcome == "executed":
                    report.executed += 1
                elif outcome == "failed":
                    report.failed += 1
                else:
                    report.skipped += 1
                report.outcomes.append(outcome)
                if self.metrics is not None:
                    self.metrics.record_step(module=module_name, action=action, outcome=outcome)
        finally:
            self._active -= 1
        return report

    async def _dispatch_step(self, module_name: str, user_id: str, step: Any) -> str:
        if not isinstance(step, dict):
            logger.warning(f"Ignoring malformed step for {user_id}: {step!r}")
            return "skipped"

        action = step.get("action")
        if action == ANSWER:
            message = step.get("message")
            if message is None:
                message = step.get("content")
            if message is None or not str(message).strip():
                logger.warning(f"Skipping ANSWER step without message for {user_id} in {module_name}")
                return "skipped"
            return await self._invoke(
                module_name, SEND_MESSAGE_ACTION, {"user_id": user_id, "message": str(message)}
            )

        if action == UPDATE_USER_CONTEXT:
            context = step.get("context", step.get("userContext"))
            if not self.contexts.save(module_name, user_id, context):
                return "failed"
            logger.info(f"Updated stored context for {user_id} in {module_name}")
            return "executed"

        if isinstance(action, str) and self.registry.resolve_handler(module_name, action):
            params = {k: v for k, v in step.items() if k != "action"}
            params["user_id"] = user_id
            return await self._invoke(module_name, action, params)

        logger.warning(f"Unrecognized step action {action!r} for {user_id} in {module_name}; ignoring")
        return "skipped"

    async def _invoke(self, module_name: str, action_name: str, params: dict[str, Any]) -> str:
        resolved = self.registry.resolve_handler(module_name, action_name)
        if resolved is None:
            logger.warning(f"Module {module_name} has no handler for action {action_name}; skipping step")
            return "skipped"

        action, handler = resolved
        kwargs = {name: params.get(name) for name in action.parameters}
        result = handler(**kwargs)
        if inspect.isawaitable(result):
            await result
        return "executed"
