"""Process lifecycle control."""

from inbox_agent.runtime.supervisor import (
    RESTART_EXIT_CODE,
    ProcessControl,
    next_backoff,
    supervise,
)

__all__ = ["RESTART_EXIT_CODE", "ProcessControl", "next_backoff", "supervise"]
