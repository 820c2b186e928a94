"""Append-only log of inbound and outbound chat messages."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger("wachat.chatlog")

MAX_LINE_LENGTH = 500


def format_entry(direction: str, jid: str, content: str, ts: datetime | None = None) -> str:
    """Build one log line: ``[ts] [IN|OUT] [jid] content``."""
    ts = ts or datetime.now(timezone.utc)
    summary = re.sub(r"\s+", " ", content or "").strip()
    line = f"[{ts.isoformat()}] [{direction}] [{jid}] {summary}"
    return line[:MAX_LINE_LENGTH]


class ChatLog:
    def __init__(self, path: Path):
        self.path = path

    def _write(self, direction: str, jid: str, content: str):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(format_entry(direction, jid, content) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write chat log: {e}")

    def inbound(self, jid: str, content: str):
        self._write("IN", jid, content)

    def outbound(self, jid: str, content: str):
        self._write("OUT", jid, content)
