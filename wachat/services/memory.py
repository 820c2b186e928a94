"""Per-sender conversation transcripts with a bounded window.

The first entry of every transcript is the persona system prompt. When the
transcript grows past ``max_length`` the oldest user/assistant pair (entries
1 and 2) is dropped, so the system prompt always survives.
"""

import logging
from pathlib import Path
from typing import Callable

from .paths import read_json, safe_jid, write_json

logger = logging.getLogger("wachat.services.memory")


class ConversationMemory:
    def __init__(self, root: Path, system_prompt: Callable[[str], str], max_length: int = 12):
        if max_length < 3:
            raise ValueError("max_length must leave room for the system prompt and one exchange")
        self.root = root
        self.max_length = max_length
        self._system_prompt = system_prompt
        self._store: dict[str, list[dict]] = {}

    def history_path(self, sender: str) -> Path:
        return self.root / f"history_{safe_jid(sender)}.json"

    def get(self, sender: str, user_name: str = "User") -> list[dict]:
        """Transcript for ``sender``, loaded from disk on first use."""
        if sender in self._store:
            return self._store[sender]

        memory = read_json(self.history_path(sender))
        if isinstance(memory, list) and memory and isinstance(memory[0], dict) and memory[0].get("role") == "system":
            logger.info(f"Loaded history for {user_name} ({len(memory)} entries)")
        else:
            memory = [{"role": "system", "content": self._system_prompt(user_name)}]
        self.trim(memory)
        self._store[sender] = memory
        return memory

    def trim(self, memory: list[dict]):
        while len(memory) > self.max_length:
            del memory[1:3]

    def append(self, sender: str, role: str, content: str, user_name: str = "User") -> list[dict]:
        memory = self.get(sender, user_name)
        memory.append({"role": role, "content": content})
        self.trim(memory)
        return memory

    def save(self, sender: str):
        memory = self._store.get(sender)
        if memory is None:
            return
        try:
            write_json(self.history_path(sender), memory)
        except OSError as e:
            logger.error(f"Error saving history for {sender}: {e}")

    def reset(self, sender: str):
        """Forget the sender's transcript, in memory and on disk."""
        self._store.pop(sender, None)
        self.history_path(sender).unlink(missing_ok=True)
        logger.info(f"Memory reset for {sender}")

    def count_histories(self) -> int:
        return len(list(self.root.glob("history_*.json"))) if self.root.is_dir() else 0
