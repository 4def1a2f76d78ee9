"""Shared external API clients."""

from auto_crm.clients.whatsapp import WhatsAppClient, WhatsAppClientError

__all__ = [
    "WhatsAppClient",
    "WhatsAppClientError",
]
