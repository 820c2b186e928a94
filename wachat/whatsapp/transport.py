"""Messaging-client abstraction.

The bot never talks to WhatsApp directly. A Transport wraps whatever client
holds the session (currently the wacli binary) and exposes a small set of
send operations plus callbacks for inbound traffic and connection changes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("wachat.transport")


class DisconnectReason:
    """Status codes attached to a ``close`` connection update."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    RESTART_REQUIRED = 515


MEDIA_TYPES = ("image", "video", "audio", "document", "sticker")


@dataclass
class InboundMessage:
    msg_id: str
    chat_jid: str
    sender_jid: str = ""
    push_name: str = ""
    text: str = ""
    caption: str = ""
    media_type: Optional[str] = None    # one of MEDIA_TYPES
    mime_type: Optional[str] = None
    is_gif: bool = False
    quoted_text: Optional[str] = None
    quoted_media_type: Optional[str] = None
    from_me: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def body(self) -> str:
        """Text of the message, falling back to the media caption."""
        return (self.text or self.caption or "").strip()

    @property
    def is_empty(self) -> bool:
        return not self.body and not self.media_type


@dataclass
class ConnectionUpdate:
    connection: Optional[str] = None   # 'open' | 'close' | 'connecting'
    qr: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class PresenceUpdate:
    id: str
    presences: dict[str, str] = field(default_factory=dict)  # participant -> state


MessageCallback = Callable[[InboundMessage], Awaitable[None]]
PresenceCallback = Callable[[PresenceUpdate], Awaitable[None]]
ConnectionCallback = Callable[[ConnectionUpdate], Awaitable[None]]


class Transport(ABC):
    """Abstract messaging client.

    Subclasses implement the I/O; callback fan-out lives here so every
    transport dispatches events the same way.
    """

    def __init__(self):
        self._message_callbacks: list[MessageCallback] = []
        self._presence_callbacks: list[PresenceCallback] = []
        self._connection_callbacks: list[ConnectionCallback] = []

    # ── Callback registration ──────────────────────────────────

    def on_message(self, callback: MessageCallback):
        self._message_callbacks.append(callback)

    def on_presence(self, callback: PresenceCallback):
        self._presence_callbacks.append(callback)

    def on_connection_update(self, callback: ConnectionCallback):
        self._connection_callbacks.append(callback)

    async def _emit_message(self, msg: InboundMessage):
        for cb in list(self._message_callbacks):
            try:
                await cb(msg)
            except Exception as e:
                logger.error(f"Message callback failed for {msg.chat_jid}: {e}", exc_info=True)

    async def _emit_presence(self, update: PresenceUpdate):
        for cb in list(self._presence_callbacks):
            try:
                await cb(update)
            except Exception as e:
                logger.error(f"Presence callback failed: {e}", exc_info=True)

    async def _emit_connection(self, update: ConnectionUpdate):
        for cb in list(self._connection_callbacks):
            await cb(update)

    # ── Lifecycle ──────────────────────────────────────────────

    @abstractmethod
    async def connect(self):
        """Open the session. Raises on boot failure."""
        ...

    @abstractmethod
    async def disconnect(self):
        """Tear down the session and any background tasks."""
        ...

    # ── Outbound ───────────────────────────────────────────────

    @abstractmethod
    async def send_text(self, jid: str, text: str, quoted: Optional[InboundMessage] = None):
        ...

    @abstractmethod
    async def send_image(self, jid: str, data: bytes, caption: str = "", mime_type: str = "image/jpeg"):
        ...

    @abstractmethod
    async def send_audio(self, jid: str, data: bytes, mime_type: str = "audio/mpeg"):
        ...

    @abstractmethod
    async def send_video(self, jid: str, data: bytes, caption: str = "", mime_type: str = "video/mp4"):
        ...

    @abstractmethod
    async def send_reaction(self, jid: str, msg_id: str, emoji: str):
        ...

    @abstractmethod
    async def send_presence(self, jid: str, state: str):
        """Send a chat state such as 'composing' or 'paused'."""
        ...

    @abstractmethod
    async def download_media(self, msg: InboundMessage) -> Optional[bytes]:
        """Fetch the media attached to ``msg``; None when unavailable."""
        ...
