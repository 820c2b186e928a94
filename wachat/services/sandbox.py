"""Per-sender file sandbox behind the ``fs`` command.

Each sender gets ``<data>/sandbox/<safe jid>/``. Names are plain file names:
anything containing a path separator or ``..`` is rejected, so a sandbox can
never reach outside its own directory.
"""

import logging
from pathlib import Path
from typing import Optional

from .paths import safe_jid

logger = logging.getLogger("wachat.services.sandbox")

HELP_TEXT = (
    "📂 *File System Help*\n\n"
    "• `fs list` - List files\n"
    "• `fs create <name> | <content>` - Create file\n"
    "• `fs append <name> | <content>` - Add to file\n"
    "• `fs read <name>` - Read file\n"
    "• `fs delete <name>` - Delete file"
)
INVALID_NAME = "❌ Invalid file name."


def sanitize_file_name(name: str) -> Optional[str]:
    trimmed = (name or "").strip()
    if not trimmed or "/" in trimmed or "\\" in trimmed or ".." in trimmed:
        return None
    return trimmed


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.2f} KB"
    return f"{kb / 1024:.2f} MB"


def _split_name_content(rest: str) -> tuple[str, str]:
    """``"<name> | <content>"``; the content may itself contain ``|``."""
    name, _, content = rest.partition("|")
    return name.strip(), content.strip()


class FileSandbox:
    def __init__(self, root: Path, sender: str):
        self.dir = root / safe_jid(sender)

    def _path(self, name: str) -> Path:
        return self.dir / name

    def list(self) -> str:
        files = sorted(p.name for p in self.dir.iterdir() if p.is_file()) if self.dir.is_dir() else []
        return "📂 *Your Files:*\n" + ("\n".join(files) or "No files yet.")

    def create(self, rest: str) -> str:
        name, content = _split_name_content(rest)
        safe_name = sanitize_file_name(name)
        if not safe_name:
            return INVALID_NAME
        self.dir.mkdir(parents=True, exist_ok=True)
        path = self._path(safe_name)
        path.write_text(content, encoding="utf-8")
        logger.info(f"Sandbox create: {path}")
        return f"✅ File *{safe_name}* created. ({format_file_size(path.stat().st_size)})"

    def append(self, rest: str) -> str:
        name, content = _split_name_content(rest)
        safe_name = sanitize_file_name(name)
        if not safe_name:
            return INVALID_NAME
        path = self._path(safe_name)
        if not path.is_file():
            return "❌ File not found. Use `fs create` first."
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n" + content)
        return f"✅ Content added to *{safe_name}*. New size: {format_file_size(path.stat().st_size)}"

    def read(self, rest: str) -> str:
        safe_name = sanitize_file_name(rest)
        if not safe_name:
            return INVALID_NAME
        path = self._path(safe_name)
        try:
            data = path.read_text(encoding="utf-8", errors="replace")
        except (FileNotFoundError, IsADirectoryError):
            return "❌ File not found."
        return f"📄 *{safe_name}*:\n\n{data}"

    def delete(self, rest: str) -> str:
        safe_name = sanitize_file_name(rest)
        if not safe_name:
            return INVALID_NAME
        self._path(safe_name).unlink(missing_ok=True)
        return f"🗑️ File *{safe_name}* deleted."

    def run(self, sub: str, rest: str) -> Optional[str]:
        """Dispatch an ``fs`` sub-command; None when ``sub`` is unknown."""
        sub = sub.lower()
        if sub == "help":
            return HELP_TEXT
        if sub == "list":
            return self.list()
        if sub in ("create", "append", "read", "delete"):
            return getattr(self, sub)(rest)
        return None
