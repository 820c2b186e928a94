"""Per-sender profile records, one JSON file each."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from .paths import read_json, safe_jid, write_json

logger = logging.getLogger("wachat.services.profiles")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProfileStore:
    def __init__(self, root: Path):
        self.root = root

    def _path(self, sender: str) -> Path:
        return self.root / f"{safe_jid(sender)}.json"

    def get_profile(self, sender: str, initial_name: str = "User") -> dict:
        """Load the sender's profile (refreshing ``last_seen``) or create one."""
        profile = read_json(self._path(sender))
        if not isinstance(profile, dict):
            now = _now()
            profile = {
                "name": initial_name,
                "relationship": "Friend",
                "interests": [],
                "notes": "",
                "deviceType": "Unknown",
                "location": "Unknown",
                "profilePicUrl": None,
                "last_seen": now,
                "created_at": now,
            }
            logger.info(f"New profile for {sender} ({initial_name})")
        else:
            profile["last_seen"] = _now()
        self.save_profile(sender, profile)
        return profile

    def save_profile(self, sender: str, profile: dict):
        try:
            write_json(self._path(sender), profile)
        except OSError as e:
            logger.error(f"Error saving profile for {sender}: {e}")

    def count(self) -> int:
        return len(list(self.root.glob("*.json"))) if self.root.is_dir() else 0
