"""Keyword commands — parsing and canned replies.

``parse_command`` is pure: it maps the trimmed message text to at most one
``Command`` in a fixed priority order, or None when the text should go to the
AI instead. Executing a command (sending, downloading) is the message
handler's job.
"""

import random
import resource
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .. import __version__

# Command names
MENU = "menu"
ELITE_AI = "elite_ai"
LEADS = "leads"
HEALTH = "health"
TIME = "time"
JOKE = "joke"
QUOTE = "quote"
ABOUT = "about"
STATS = "stats"
GALLERY = "gallery"
STATUS = "status"
FS = "fs"
SONG = "song"
VIDEO = "video"
NUKE = "nuke"

FS_SUBCOMMANDS = ("help", "list", "create", "append", "read", "delete")


@dataclass
class Command:
    name: str
    arg: str = ""   # query for song/video, remainder for fs
    sub: str = ""   # fs sub-command


def parse_command(text: str, is_owner: bool = False, keyword: str = "mazhar") -> Optional[Command]:
    """Select the command for ``text``; None means "ask the AI"."""
    text = (text or "").strip()
    lower = text.lower()

    if lower in ("menu", "help", "/menu"):
        return Command(MENU)
    if lower == "elite ai":
        return Command(ELITE_AI)
    if lower in ("leads", "list leads") and is_owner:
        return Command(LEADS)
    if lower == "health":
        return Command(HEALTH)
    if lower == "time":
        return Command(TIME)
    if lower == "joke":
        return Command(JOKE)
    if lower == "quote":
        return Command(QUOTE)
    if lower in ("owner", "premium", "/premium", "about"):
        return Command(ABOUT)
    if lower == "stats":
        return Command(STATS)
    if lower == "gallery":
        return Command(GALLERY)
    if lower == "status":
        return Command(STATUS)

    if lower.startswith("fs "):
        sub, _, rest = text[3:].strip().partition(" ")
        if sub.lower() in FS_SUBCOMMANDS:
            return Command(FS, arg=rest.strip(), sub=sub.lower())
        return None

    if lower.startswith("song "):
        return Command(SONG, arg=text[5:].strip())
    if lower.startswith("play song "):
        return Command(SONG, arg=text[10:].strip())
    if lower.startswith("video "):
        return Command(VIDEO, arg=text[6:].strip())
    if lower.startswith("play video "):
        return Command(VIDEO, arg=text[11:].strip())

    if lower == f"{keyword.lower()} nuke" and is_owner:
        return Command(NUKE)

    return None


# ── Canned replies ─────────────────────────────────────────────

JOKES = [
    "Why do programmers prefer dark mode? Because light attracts bugs. 😂",
    "Hardware: The parts of a computer that can be kicked. 💻",
    "A SQL query walks into a bar, walks up to two tables, and asks, 'Can I join you?'",
    "Algorithm: Words used by programmers when they don't want to explain what they did.",
]

QUOTES = [
    "\"First, solve the problem. Then, write the code.\" – John Johnson",
    "\"Experience is the name everyone gives to their mistakes.\" – Oscar Wilde",
    "\"Knowledge is power.\" – Francis Bacon",
    "\"Code is like humor. When you have to explain it, it's bad.\" – Cory House",
]


def build_menu(settings) -> str:
    return "\n".join([
        f"💎 *{settings.bot_name} v{__version__}*",
        "────────────────────",
        f"🤖 *{settings.persona_name} AI (Conversation Memory Enabled)*",
        f"   • Just type: *{settings.keyword} <your question>*",
        "   • *elite ai* – personality check",
        "",
        "📂 *File Sandbox*",
        "   • *fs help* – manage your files",
        "   • *fs list* – see your sandbox",
        "",
        "🎵 *Entertainment*",
        "   • *song <name>* / *video <name>*",
        "   • *image <query>* – web search",
        "",
        "📊 *System & Stats*",
        "   • *status* – see online users",
        "   • *stats* – your chat history",
        "   • *gallery* – see media stats",
        "   • *health* – system performance",
        "",
        "💡 *Fun & Info*",
        "   • *joke* / *quote* / *time*",
        f"   • */premium* – about {settings.owner_name}",
        "",
        f"👑 *Owner*: {settings.owner_name}",
        "────────────────────",
        "Type *menu* to see this list again.",
    ])


def elite_ai_text(settings) -> str:
    return (
        f"💎 *{settings.bot_name} v{__version__}*\n\n"
        f"Main {settings.persona_name} hoon yaar. AI waghaira ka koi scene nahi hai. "
        "Engineering aur business focus hai bas. 🚀"
    )


def about_text(settings) -> str:
    return (
        f"👋 Hello! I'm {settings.persona_name} – Elite Full Stack Developer | MERN Stack Specialist\n\n"
        "🌐 *Full Stack Expertise*\n"
        "I craft high-performance, scalable, and modern web applications using the MERN stack: "
        "MongoDB, Express.js, React.js, Node.js.\n\n"
        "🚀 *What I Can Build For You*\n"
        "- Modern responsive websites\n"
        "- High-performance web applications\n"
        "- REST APIs & backend systems\n"
        "- Full end-to-end MERN solutions\n\n"
        "📬 *Let's Connect*\n"
        "I'm here to help you turn ideas into real-world projects. ✨"
    )


def leads_text(leads: list[dict]) -> str:
    if not leads:
        return "📂 *Leads Directory*\n\nAbhi tak koi leads nahi hain yaar. Kaam pe lag jao! 🚀"
    lines = "\n".join(
        f"{i}. *{l.get('name', '?')}*: {l.get('project', '?')} ({str(l.get('jid', '')).split('@')[0]})"
        for i, l in enumerate(leads, 1)
    )
    return f"📂 *Collected Leads*\n\n{lines}\n\nTotal: {len(leads)} leads found. 🔥"


def _rss_mb() -> float:
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes on Linux
    return rss / (1024 * 1024) if sys.platform == "darwin" else rss / 1024


def health_text(uptime_seconds: float) -> str:
    return (
        "🚀 *System Health*\n\n"
        f"⏱️ Uptime: {int(uptime_seconds)}s\n"
        f"📦 Peak Memory: {_rss_mb():.2f} MB\n"
        "✅ Status: Operational"
    )


def time_text(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"⏰ *Current Server Time*\n\n{now.strftime('%Y-%m-%d %H:%M:%S')}"


def joke_text() -> str:
    return f"😂 *Dev Joke*\n\n{random.choice(JOKES)}"


def quote_text() -> str:
    return f"💡 *Tech Quote*\n\n{random.choice(QUOTES)}"


def stats_text(stats, relationship: str, bot_name: str) -> str:
    return (
        "📈 *Your Stats*\n\n"
        f"• Messages Sent: *{stats.messages}*\n"
        f"• First Seen: *{stats.first_seen.strftime('%Y-%m-%d %H:%M:%S')}*\n"
        f"• Profile: *{relationship}*\n\n"
        f"Powered by *{bot_name}*"
    )


def gallery_text(media) -> str:
    last = media.last_updated.strftime("%Y-%m-%d %H:%M:%S") if media.last_updated else "No media yet"
    return (
        "🖼️ *Your Gallery Stats*\n\n"
        f"• Images Sent: *{media.images}*\n"
        f"• Videos Sent: *{media.videos}*\n"
        f"• Last Activity: *{last}*"
    )


def status_text(presences: dict[str, dict]) -> str:
    if not presences:
        return "No presence data yet."
    labels = {"available": "🟢 online", "composing": "✍️ typing..."}
    lines = "\n".join(
        f"• {jid.split('@')[0]}: {labels.get(entry.get('status'), '⚪ offline')}"
        for jid, entry in presences.items()
    )
    return f"👥 *Live Status*\n\n{lines}"
