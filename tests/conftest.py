"""Pytest configuration and shared fixtures."""

from typing import Optional

import pytest

from wachat.config import WachatSettings
from wachat.whatsapp.transport import InboundMessage, Transport


class FakeTransport(Transport):
    """In-memory transport: records sends, replays scripted connection updates."""

    def __init__(self, updates=None, fail_connect: Optional[Exception] = None, after_connect=None):
        super().__init__()
        self.updates = list(updates or [])
        self.fail_connect = fail_connect
        self.after_connect = after_connect
        self.connected = False
        self.disconnected = False
        self.media: Optional[bytes] = None
        self.sent: list[tuple] = []
        self.presences: list[tuple] = []

    async def connect(self):
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True
        for update in self.updates:
            await self._emit_connection(update)
        if self.after_connect is not None:
            await self.after_connect(self)

    async def disconnect(self):
        self.disconnected = True

    async def send_text(self, jid, text, quoted=None):
        self.sent.append(("text", jid, text))

    async def send_image(self, jid, data, caption="", mime_type="image/jpeg"):
        self.sent.append(("image", jid, caption, mime_type))

    async def send_audio(self, jid, data, mime_type="audio/mpeg"):
        self.sent.append(("audio", jid, len(data)))

    async def send_video(self, jid, data, caption="", mime_type="video/mp4"):
        self.sent.append(("video", jid, caption))

    async def send_reaction(self, jid, msg_id, emoji):
        self.sent.append(("reaction", jid, msg_id, emoji))

    async def send_presence(self, jid, state):
        self.presences.append((jid, state))

    async def download_media(self, msg: InboundMessage):
        return self.media


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temp dir, with an owner and a (fake) API key."""
    return WachatSettings(
        data_dir=str(tmp_path / "data"),
        log_file=str(tmp_path / "wachat.log"),
        groq_api_key="test-key",
        owner_jid="owner@s.whatsapp.net",
        owner_images=[],
        send_retry_delay=0,
    )


@pytest.fixture
def user_msg():
    def make(text="", **kwargs):
        kwargs.setdefault("msg_id", "MSG1")
        kwargs.setdefault("chat_jid", "user@s.whatsapp.net")
        kwargs.setdefault("push_name", "Ali")
        return InboundMessage(text=text, **kwargs)
    return make
