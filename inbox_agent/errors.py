"""Exception types shared across the pipeline."""

from __future__ import annotations


class InboxAgentError(Exception):
    """Base error for inbox-agent."""


class ConfigurationError(InboxAgentError):
    """A required credential or setting is missing."""


class MessagingConfigError(ConfigurationError):
    """Messaging gateway cannot send because module settings are incomplete."""


class UpstreamError(InboxAgentError):
    """A vendor API answered with a non-success response."""

    def __init__(self, message: str, *, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class MessagingHTTPError(UpstreamError):
    """Messaging vendor rejected an outbound send."""


class ReasoningError(UpstreamError):
    """Reasoning service failed to produce a response."""


class StepParseError(InboxAgentError):
    """Reasoning output is not a JSON array of step objects."""

    def __init__(self, message: str, *, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class AuthError(InboxAgentError):
    """Admin request failed authentication."""

    def __init__(self, message: str, *, status: int = 401):
        super().__init__(message)
        self.status = status
