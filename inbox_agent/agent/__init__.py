"""Agent core module."""

from inbox_agent.agent.aggregator import AggregationBuffer, Fragment, MessageAggregator
from inbox_agent.agent.context import ConversationBuilder, UserContextStore
from inbox_agent.agent.dispatcher import DispatchReport, StepDispatcher
from inbox_agent.agent.loop import AgentLoop

__all__ = [
    "AgentLoop",
    "AggregationBuffer",
    "ConversationBuilder",
    "DispatchReport",
    "Fragment",
    "MessageAggregator",
    "StepDispatcher",
    "UserContextStore",
]
