"""Sender identity resolution."""

from inbox_agent.identity.resolver import IdentityMapping, IdentityResolver, new_internal_id

__all__ = ["IdentityMapping", "IdentityResolver", "new_internal_id"]
