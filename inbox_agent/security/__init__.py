"""Admin API authentication."""

from inbox_agent.security.auth import AdminAuth, client_ip, issue_admin_token

__all__ = ["AdminAuth", "client_ip", "issue_admin_token"]
