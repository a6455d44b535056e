"""Messaging channel modules."""

from inbox_agent.channels.base import InboundText, SocialModule
from inbox_agent.channels.graph import GRAPH_API_BASE, GraphMessagingGateway
from inbox_agent.channels.instagram import InstagramModule
from inbox_agent.channels.whatsapp import WhatsAppModule

BUILTIN_MODULES = (WhatsAppModule, InstagramModule)

__all__ = [
    "BUILTIN_MODULES",
    "GRAPH_API_BASE",
    "GraphMessagingGateway",
    "InboundText",
    "InstagramModule",
    "SocialModule",
    "WhatsAppModule",
]
