"""Inbox Agent - debounced messaging channels driven by an AI step planner."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("inbox-agent")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "📨"
__brand__ = "inbox-agent"
