"""Reply post-processing — anti-echo cleanup and directive tokens.

The model embeds bracketed tokens in its reply (``[GIF: dance]``,
``[IMG_SEARCH: cats, 2]``, ...). ``DirectiveProcessor`` acts on them in a
fixed priority order: some tokens end processing (research, offline notice,
fallback, GIF, owner photo), the rest are stripped and their results
appended before the remaining text is sent.
"""

import logging
import random
import re
from pathlib import Path
from typing import Optional

from ..errors import DownloadError
from ..services import downloads, gif, search

logger = logging.getLogger("wachat.handlers.directives")

# ── Token patterns ─────────────────────────────────────────────

MEMORY_RESET_RE = re.compile(r"\[GLOBAL_MEMORY_RESET\]", re.IGNORECASE)
DEEP_RESEARCH_RE = re.compile(r"\[DEEP_RESEARCH:\s*(.*?)\]", re.IGNORECASE)
OWNER_OFFLINE_RE = re.compile(r"\[TRIGGER_NOTIFY_OWNER_OFFLINE\]", re.IGNORECASE)
FALLBACK_RE = re.compile(r"\[FALLBACK\]", re.IGNORECASE)
GIF_RE = re.compile(r"\[GIF:\s*(.*?)\]", re.IGNORECASE)
FORWARD_RE = re.compile(r"\[FORWARD:\s*(.*?)\s*\|\s*(.*?)\]", re.IGNORECASE)
OWNER_PHOTO_RE = re.compile(r"\[(?:TRIGGER_SEND_REAL_OWNER_PHOTO|OWNER_IMAGE)\]", re.IGNORECASE)
WEB_SEARCH_RE = re.compile(r"\[WEB_SEARCH:\s*(.*?)\]", re.IGNORECASE)
VID_SEARCH_RE = re.compile(r"\[VID_SEARCH:\s*(.*?)\]", re.IGNORECASE)
REACTION_RE = re.compile(r"\[REACTION:\s*(.*?)\]", re.IGNORECASE)
NEW_LEAD_RE = re.compile(r"\[NEW_LEAD:\s*(.*?),\s*(.*?)\]", re.IGNORECASE)
IMG_SEARCH_RE = re.compile(r"\[IMG_SEARCH:\s*(.*?)(?:,\s*(\d+|count))?\]", re.IGNORECASE)
SONG_SEARCH_RE = re.compile(r"\[SONG_SEARCH:\s*(.*?)\]", re.IGNORECASE)
VIDEO_DOWNLOAD_RE = re.compile(r"\[VIDEO_DOWNLOAD:\s*(.*?)\]", re.IGNORECASE)

OWNER_OFFLINE_TEXT = "sorry i didn't get that. type menu for option the owner is currently offline place wait"
FALLBACK_TEXT = "Sorry, I didn't get that. Type *menu* to see what I can do. 🙂"

REAL_CHAT_KEYWORDS = ("real chat", "fake chat", "are you real", "real ho", "fake ho", "not fake")


def strip_token(text: str, pattern: re.Pattern) -> str:
    """Remove every occurrence of ``pattern`` from ``text``."""
    return pattern.sub("", text).strip()


def normalize_phone(raw: str) -> str:
    """Digits only; local ``03…`` numbers become ``923…``."""
    phone = re.sub(r"[^0-9]", "", raw)
    if phone.startswith("03"):
        phone = "92" + phone[1:]
    return phone


def clean_reply(reply: str, prompt: str, persona_name: str = "Mazhar") -> str:
    """Anti-echo cleanup applied to every model reply."""
    clean = (reply or "").strip()
    p_lower = (prompt or "").lower()
    r_lower = clean.lower()

    # Model repeated the prompt back
    if len(p_lower) > 5 and p_lower in r_lower:
        clean = re.sub(re.escape(p_lower), "", clean, flags=re.IGNORECASE).strip()
        clean = re.sub(r"^[:\-\s,]+", "", clean)
        clean = re.sub(rf"^{re.escape(persona_name)}:\s*", "", clean, flags=re.IGNORECASE).strip()

    # Identity shield
    if any(k in p_lower for k in REAL_CHAT_KEYWORDS):
        if "ai" in r_lower or "bot" in r_lower or "model" in r_lower:
            clean = (
                f"Yaar main {persona_name} hi hoon, real chat ho rahi hai. AI waghaira ka koi scene nahi hai, "
                "elite engineering aur business focus hai bas. 🚀"
            )

    clean = re.sub(rf"{re.escape(persona_name)} here", "", clean, flags=re.IGNORECASE)
    clean = re.sub(r"Thinking\.\.\.", "", clean, flags=re.IGNORECASE)
    clean = re.sub(r"As an AI model", "Yaar", clean, flags=re.IGNORECASE)
    return clean.strip()


def _asks_for_owner(prompt: str) -> bool:
    p = prompt.lower()
    return any(w in p for w in ("menu", "help", "admin", "owner"))


def parse_image_count(raw: Optional[str]) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 1


class DirectiveProcessor:
    """Runs the directive pipeline for one reply.

    ``handler`` supplies delivery (``send_text``, ``send_image``,
    ``send_audio``, ``send_video``, ``react``) and the services (``ai``,
    ``leads``, ``profiles``, ``settings``).
    """

    def __init__(self, handler):
        self.h = handler
        self.settings = handler.settings

    async def process(self, reply: str, prompt: str, msg, profile: dict):
        sender = msg.chat_jid
        text = clean_reply(reply, prompt, self.settings.persona_name)

        # 1. Memory reset, then keep going
        if MEMORY_RESET_RE.search(text):
            self.h.ai.reset(sender)
            logger.info(f"Global memory reset triggered for {sender}")
            text = strip_token(text, MEMORY_RESET_RE)

        # 2-5. Exclusive directives
        m = DEEP_RESEARCH_RE.search(text)
        if m:
            await self._deep_research(m.group(1).strip(), msg)
            return

        if OWNER_OFFLINE_RE.search(text):
            if _asks_for_owner(prompt):
                await self.h.send_text(sender, OWNER_OFFLINE_TEXT, quoted=msg)
            else:
                text = strip_token(text, OWNER_OFFLINE_RE)
                if text:
                    await self.h.send_text(sender, text, quoted=msg)
            return

        if FALLBACK_RE.search(text):
            await self.h.send_text(sender, FALLBACK_TEXT, quoted=msg)
            return

        m = GIF_RE.search(text)
        if m:
            await self._send_gif(m.group(1).strip(), strip_token(text, GIF_RE), msg)
            return

        # 6. Forward, then keep going
        m = FORWARD_RE.search(text)
        if m:
            phone = normalize_phone(m.group(1))
            target = f"{phone}@s.whatsapp.net"
            logger.info(f"Forwarding message to {target}")
            await self.h.send_text(target, m.group(2).strip())
            text = strip_token(text, FORWARD_RE)

        # 7. Owner photo (exclusive)
        if OWNER_PHOTO_RE.search(text):
            await self._send_owner_photo(msg)
            return

        # 8-9. Search links
        m = WEB_SEARCH_RE.search(text)
        if m:
            query = m.group(1).strip()
            text = strip_token(text, WEB_SEARCH_RE)
            results = await search.deep_search(query, "web")
            if results:
                links = "\n\n".join(f"• *{r['title']}*\n  🔗 {r['url']}" for r in results)
                text += f"\n\n🌐 *Deep Search Results for \"{query}\":*\n\n{links}"

        m = VID_SEARCH_RE.search(text)
        if m:
            query = m.group(1).strip()
            text = strip_token(text, VID_SEARCH_RE)
            results = await search.deep_search(query, "video")
            if results:
                links = "\n\n".join(f"• *{r['title']}*\n  🎬 {r['url']}" for r in results)
                text += f"\n\n🎬 *Deep Video Search for \"{query}\":*\n\n{links}"

        # 10. Reaction
        m = REACTION_RE.search(text)
        if m:
            await self.h.react(msg, m.group(1).strip())
            text = strip_token(text, REACTION_RE)

        # 11. Lead capture
        m = NEW_LEAD_RE.search(text)
        if m:
            name, project = m.group(1).strip(), m.group(2).strip()
            if self.h.leads.add_lead(sender, name, project):
                profile["relationship"] = "Lead"
                profile["notes"] = f"Interested in: {project}"
                self.h.profiles.save_profile(sender, profile)
            text = strip_token(text, NEW_LEAD_RE)

        # 12. Image search
        m = IMG_SEARCH_RE.search(text)
        if m:
            query = m.group(1).strip()
            text = strip_token(text, IMG_SEARCH_RE)
            text += await self._send_images(query, parse_image_count(m.group(2)), msg)

        # 13-14. Media downloads
        m = SONG_SEARCH_RE.search(text)
        if m:
            query = m.group(1).strip()
            text = strip_token(text, SONG_SEARCH_RE)
            try:
                audio = await downloads.fetch_audio(query)
                await self.h.send_audio(sender, audio, quoted=msg)
                text += f"\n\n🎵 _Sent audio for: {query}_"
            except DownloadError as e:
                logger.error(f"Song download failed for {query}: {e}")
                text += f"\n\n_(System Note: Sorry yaar, the audio download for \"{query}\" failed right now.)_"

        m = VIDEO_DOWNLOAD_RE.search(text)
        if m:
            query = m.group(1).strip()
            text = strip_token(text, VIDEO_DOWNLOAD_RE)
            try:
                video = await downloads.fetch_video(query)
                await self.h.send_video(sender, video, quoted=msg)
                text += f"\n\n🎬 _Sent video for: {query}_"
            except DownloadError as e:
                logger.error(f"Video download failed for {query}: {e}")
                text += f"\n\n_(System Note: Sorry yaar, the video download for \"{query}\" failed right now.)_"

        # 15. Whatever text is left
        text = text.strip()
        if text:
            await self.h.send_text(sender, text, quoted=msg)

    # ── Exclusive directive helpers ────────────────────────────

    async def _deep_research(self, query: str, msg):
        sender = msg.chat_jid
        logger.info(f"Deep research: {query}")
        result = await search.perform_research(query)

        web_report = "\n".join(f"- {r['title']}: {r['url']}" for r in result["web"])
        research_prompt = (
            f"Translate and explain this info briefly as {self.settings.persona_name} in a casual, "
            f"human way. Match the user's language: {web_report}"
        )
        synthesis = await self.h.ai.reply(research_prompt, sender, "System_Research")
        await self.h.send_text(sender, synthesis.strip(), quoted=msg)

        for url in result["images"]:
            data = await downloads.fetch_bytes(url)
            if data:
                await self.h.send_image(sender, data, caption=f"🖼️ Research Image\n🔗 Source: {url}", quoted=msg)
                break
            logger.warning(f"Skipping broken research image: {url}")

        if result["video"]:
            await self.h.send_text(sender, f"🎬 *Video Found:* {result['video'][0]['url']}", quoted=msg)

    async def _send_gif(self, category: str, caption: str, msg):
        sender = msg.chat_jid
        gif_url = await gif.get_gif(category)
        data = await downloads.fetch_bytes(gif_url)
        if data:
            # Sent as an image; clients play it back as an animated image
            await self.h.send_image(sender, data, caption=caption, mime_type="image/gif", quoted=msg)
        else:
            logger.error(f"GIF fetch failed: {gif_url}")
            if caption:
                await self.h.send_text(sender, caption, quoted=msg)

    async def _send_owner_photo(self, msg):
        images = self.settings.owner_images
        if not images:
            logger.warning("Owner photo requested but no owner images configured")
            return
        path = Path(random.choice(images)).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read owner image {path}: {e}")
            return
        await self.h.send_image(
            msg.chat_jid, data,
            caption=f"💎 Here is a photo of the owner, *{self.settings.persona_name}*.",
            quoted=msg,
        )

    async def _send_images(self, query: str, count: int, msg) -> str:
        """Send up to ``count`` images; returns a system note to append ('' if fine)."""
        try:
            # Over-fetch so broken links can be skipped
            urls = await search.search_web_images(query, count + 3)
            if not urls:
                return f"\n\n_(System Note: I searched for \"{query}\" on the web but found no results.)_"
            sent = 0
            for url in urls:
                if sent >= count:
                    break
                data = await downloads.fetch_bytes(url)
                if not data:
                    logger.warning(f"Skipping broken image URL: {url}")
                    continue
                await self.h.send_image(
                    msg.chat_jid, data, caption=f"🖼️ Found from Web\n🔗 Source (Clickable): {url}", quoted=msg,
                )
                sent += 1
            if sent == 0:
                return f"\n\n_(System Note: Tried to send images for \"{query}\", but all links were broken.)_"
            return ""
        except Exception as e:
            logger.error(f"Image search error: {e}", exc_info=True)
            return "\n\n_(System Note: Error searching for image.)_"
