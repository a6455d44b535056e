"""WhatsApp Cloud API channel."""

from inbox_agent.channels.base import SocialModule


class WhatsAppModule(SocialModule):
    """Receives WhatsApp Business webhooks and replies through the Cloud API."""

    name = "whatsapp"
    display_name = "WhatsApp"
    controller_path = "/whatsapp"
    messaging_product = "whatsapp"
