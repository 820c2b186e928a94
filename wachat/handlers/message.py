"""Inbound message handling.

Every inbound message goes through ``MessageHandler.handle_message``: stats
and profile bookkeeping, then either a keyword command or the AI path, whose
reply is handed to the directive pipeline. Exceptions never escape; a
failing message is logged and dropped.
"""

import asyncio
import logging
import mimetypes
import time
from typing import Awaitable, Callable, Optional

from ..chatlog import ChatLog
from ..errors import ConnectionClosedError, DownloadError
from ..services import downloads
from ..services.ai import AIService
from ..services.leads import LeadStore
from ..services.profiles import ProfileStore
from ..services.sandbox import FileSandbox
from ..state import BotState
from ..whatsapp.transport import InboundMessage, PresenceUpdate, Transport
from . import commands
from .directives import DirectiveProcessor

logger = logging.getLogger("wachat.handlers.message")

_AUTO_DOWNLOAD_TYPES = ("image", "video", "audio", "document")
_DEFAULT_EXTENSIONS = {"image": ".jpg", "video": ".mp4", "audio": ".mp3"}
_QUOTED_LABELS = {"image": "[An Image]", "video": "[A Video]", "audio": "[A Voice Note]"}


def quoted_context(msg: InboundMessage) -> str:
    """``[USER_REPLY_TO: "..."] `` prefix when the message replies to another."""
    quoted = msg.quoted_text or _QUOTED_LABELS.get(msg.quoted_media_type or "", "")
    return f'[USER_REPLY_TO: "{quoted}"] ' if quoted else ""


class MessageHandler:
    def __init__(
        self,
        settings,
        ai: Optional[AIService] = None,
        state: Optional[BotState] = None,
        profiles: Optional[ProfileStore] = None,
        leads: Optional[LeadStore] = None,
        chatlog: Optional[ChatLog] = None,
        sleep=asyncio.sleep,
    ):
        data = settings.data_path
        self.settings = settings
        self.ai = ai or AIService(settings)
        self.state = state or BotState()
        self.profiles = profiles or ProfileStore(data / "profiles")
        self.leads = leads or LeadStore(data / "leads.json")
        self.chatlog = chatlog or ChatLog(data / "logs" / "messages.log")
        self.directives = DirectiveProcessor(self)
        self.transport: Optional[Transport] = None
        self.shutdown_callback: Optional[Callable[[], None]] = None
        self._sleep = sleep

    def attach(self, transport: Transport):
        self.transport = transport

    # ── Delivery ───────────────────────────────────────────────

    async def safe_send(self, send: Callable[[], Awaitable], description: str = "message") -> bool:
        """Run ``send`` with retries while the connection is closed.

        Any other failure is logged and the send dropped.
        """
        retries = self.settings.send_retries
        for attempt in range(1, retries + 1):
            try:
                await send()
                return True
            except ConnectionClosedError:
                logger.warning(
                    f"Connection unstable sending {description}. "
                    f"Retrying in {self.settings.send_retry_delay}s (attempts left: {retries - attempt})..."
                )
                await self._sleep(self.settings.send_retry_delay)
            except Exception as e:
                logger.error(f"Send error ({description}): {e}")
                return False
        logger.error(f"Failed to send {description} after {retries} attempts.")
        return False

    async def send_text(self, jid: str, text: str, quoted: Optional[InboundMessage] = None) -> bool:
        ok = await self.safe_send(lambda: self.transport.send_text(jid, text, quoted=quoted), "text")
        if ok:
            self.chatlog.outbound(jid, text)
        return ok

    async def send_image(
        self,
        jid: str,
        data: bytes,
        caption: str = "",
        mime_type: str = "image/jpeg",
        quoted: Optional[InboundMessage] = None,
    ) -> bool:
        ok = await self.safe_send(
            lambda: self.transport.send_image(jid, data, caption=caption, mime_type=mime_type), "image",
        )
        if ok:
            self.chatlog.outbound(jid, f"[image] {caption}")
        return ok

    async def send_audio(self, jid: str, data: bytes, quoted: Optional[InboundMessage] = None) -> bool:
        ok = await self.safe_send(lambda: self.transport.send_audio(jid, data, mime_type="audio/mpeg"), "audio")
        if ok:
            self.chatlog.outbound(jid, f"[audio] {len(data)} bytes")
        return ok

    async def send_video(
        self, jid: str, data: bytes, caption: str = "", quoted: Optional[InboundMessage] = None,
    ) -> bool:
        ok = await self.safe_send(
            lambda: self.transport.send_video(jid, data, caption=caption, mime_type="video/mp4"), "video",
        )
        if ok:
            self.chatlog.outbound(jid, f"[video] {caption or f'{len(data)} bytes'}")
        return ok

    async def react(self, msg: InboundMessage, emoji: str) -> bool:
        return await self.safe_send(
            lambda: self.transport.send_reaction(msg.chat_jid, msg.msg_id, emoji), "reaction",
        )

    async def _presence(self, jid: str, state: str):
        try:
            await self.transport.send_presence(jid, state)
        except Exception as e:
            logger.debug(f"Presence update '{state}' failed: {e}")

    # ── Inbound ────────────────────────────────────────────────

    async def handle_presence(self, update: PresenceUpdate):
        self.state.handle_presence(update)

    async def handle_message(self, msg: InboundMessage):
        try:
            await self._handle(msg)
        except Exception as e:
            logger.error(f"Handler error for {msg.chat_jid}: {e}", exc_info=True)

    async def _handle(self, msg: InboundMessage):
        if msg.from_me or msg.is_empty:
            return

        sender = msg.chat_jid
        push_name = msg.push_name or "User"
        text = msg.body

        profile = self.profiles.get_profile(sender, push_name)
        self.state.record_message(sender)
        self.chatlog.inbound(sender, text or f"[{msg.media_type}]")

        media_bytes = None
        if msg.media_type in _AUTO_DOWNLOAD_TYPES:
            self.state.record_media(sender, msg.media_type)
            media_bytes = await self._auto_download(msg)

        cmd = commands.parse_command(text, self.settings.is_owner(sender), self.settings.keyword)
        if cmd is not None:
            logger.info(f"Command '{cmd.name}' from {sender}")
            await self._run_command(cmd, msg, profile)
            return

        await self._ai_path(msg, text, profile, media_bytes)

    async def _auto_download(self, msg: InboundMessage) -> Optional[bytes]:
        """Fetch inbound media and keep a copy under ``<data>/downloads``."""
        logger.info(f"Downloading {msg.media_type} from {msg.chat_jid}...")
        data = await self.transport.download_media(msg)
        if not data:
            logger.warning(f"Media download failed for {msg.msg_id}")
            return None
        ext = _DEFAULT_EXTENSIONS.get(msg.media_type or "")
        if ext is None:
            ext = mimetypes.guess_extension(msg.mime_type or "") or ".bin"
        path = self.settings.data_path / "downloads" / f"wachat_download_{int(time.time() * 1000)}{ext}"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            logger.info(f"Saved media to {path}")
        except OSError as e:
            logger.error(f"Media save error: {e}")
        return data

    async def _ai_path(self, msg: InboundMessage, text: str, profile: dict, media_bytes: Optional[bytes]):
        sender = msg.chat_jid
        persona = self.settings.persona_name
        await self._presence(sender, "composing")

        prompt = quoted_context(msg) + text
        image: Optional[bytes] = None
        media_type: Optional[str] = None

        if msg.is_gif or msg.media_type in ("image", "video"):
            if msg.is_gif:
                media_type = "gif"
            else:
                media_type = msg.media_type
            if media_type == "image":
                image = media_bytes
            else:
                logger.info(f"Bypassing vision for {media_type}")
            if not text:
                prompt = {
                    "image": "Is photo ko dekho aur react karo.",
                    "gif": "Is GIF ko dekho aur react karo.",
                }.get(media_type, "Is video ko dekho aur iska breakdown do.")
        elif msg.media_type == "audio":
            transcription = None
            if media_bytes:
                transcription = await self.ai.transcribe(media_bytes, msg.mime_type or "audio/ogg")
            if transcription:
                logger.info(f"Voice note transcribed: {transcription[:80]}")
                prompt = transcription
            else:
                prompt = f"{persona}, maine voice message bheja hai par error aa raha hai."

        if not prompt and not image:
            prompt = f"Hi {persona}!"

        reply = await self.ai.reply(prompt, sender, msg.push_name or "User", image=image, media_type=media_type)
        await self._presence(sender, "paused")
        await self.directives.process(reply, prompt, msg, profile)

    # ── Commands ───────────────────────────────────────────────

    async def _run_command(self, cmd: commands.Command, msg: InboundMessage, profile: dict):
        sender = msg.chat_jid
        s = self.settings

        if cmd.name == commands.SONG:
            await self._download_command(cmd.arg, msg, audio=True)
            return
        if cmd.name == commands.VIDEO:
            await self._download_command(cmd.arg, msg, audio=False)
            return
        if cmd.name == commands.NUKE:
            await self.send_text(sender, "🧨 [SYSTEM] Nuking this process... Goodbye! (Restart with wachat start)", quoted=msg)
            logger.warning("Owner requested process termination.")
            if self.shutdown_callback:
                asyncio.get_running_loop().call_later(1.0, self.shutdown_callback)
            return

        if cmd.name == commands.MENU:
            reply = commands.build_menu(s)
        elif cmd.name == commands.ELITE_AI:
            reply = commands.elite_ai_text(s)
        elif cmd.name == commands.LEADS:
            reply = commands.leads_text(self.leads.all_leads())
        elif cmd.name == commands.HEALTH:
            reply = commands.health_text(self.state.uptime)
        elif cmd.name == commands.TIME:
            reply = commands.time_text()
        elif cmd.name == commands.JOKE:
            reply = commands.joke_text()
        elif cmd.name == commands.QUOTE:
            reply = commands.quote_text()
        elif cmd.name == commands.ABOUT:
            reply = commands.about_text(s)
        elif cmd.name == commands.STATS:
            stats = self.state.user_stats.get(sender)
            if stats is None:
                return
            reply = commands.stats_text(stats, profile.get("relationship", "Friend"), s.bot_name)
        elif cmd.name == commands.GALLERY:
            media = self.state.user_media_stats.get(sender)
            if media is None:
                return
            reply = commands.gallery_text(media)
        elif cmd.name == commands.STATUS:
            reply = commands.status_text(self.state.user_presences)
        elif cmd.name == commands.FS:
            sandbox = FileSandbox(s.data_path / "sandbox", sender)
            try:
                reply = sandbox.run(cmd.sub, cmd.arg)
            except OSError as e:
                logger.error(f"Sandbox error for {sender}: {e}")
                reply = "❌ Something went wrong with the file system command."
        else:
            logger.warning(f"Unhandled command {cmd.name}")
            return

        if reply:
            await self.send_text(sender, reply, quoted=msg)

    async def _download_command(self, query: str, msg: InboundMessage, audio: bool):
        sender = msg.chat_jid
        if audio:
            await self.send_text(sender, f"🎵 *Searching Audio:* {query}...\n_(Please wait, downloading MP3)_", quoted=msg)
        else:
            await self.send_text(sender, f"🎬 *Searching Video:* {query}...\n_(Please wait, downloading MP4)_", quoted=msg)
        try:
            if audio:
                data = await downloads.fetch_audio(query)
                await self.send_audio(sender, data, quoted=msg)
            else:
                data = await downloads.fetch_video(query)
                await self.send_video(sender, data, quoted=msg)
        except DownloadError as e:
            logger.error(f"{'Audio' if audio else 'Video'} download failed for {query}: {e}")
            if audio:
                await self.send_text(
                    sender, "❌ Could not download the song right now. Try another query or use video search.",
                    quoted=msg,
                )
            else:
                await self.send_text(sender, "❌ Could not download the video right now. Try searching via web.", quoted=msg)
