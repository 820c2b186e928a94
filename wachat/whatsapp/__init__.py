"""WhatsApp connectivity: transport, connection supervision, QR server."""

from .transport import (
    ConnectionUpdate,
    DisconnectReason,
    InboundMessage,
    PresenceUpdate,
    Transport,
)
from .wacli import WacliTransport

__all__ = [
    "ConnectionUpdate",
    "DisconnectReason",
    "InboundMessage",
    "PresenceUpdate",
    "Transport",
    "WacliTransport",
]
