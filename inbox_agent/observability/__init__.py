"""Pipeline metrics."""

from inbox_agent.observability.metrics import MetricsStore

__all__ = ["MetricsStore"]
