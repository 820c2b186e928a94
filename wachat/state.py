"""In-process counters. Nothing here survives a restart."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .whatsapp.transport import PresenceUpdate


@dataclass
class UserStats:
    messages: int = 0
    first_seen: datetime = field(default_factory=datetime.now)
    last_seen: datetime = field(default_factory=datetime.now)


@dataclass
class MediaStats:
    images: int = 0
    videos: int = 0
    last_updated: Optional[datetime] = None


class BotState:
    def __init__(self):
        self.started_at = time.monotonic()
        self.user_stats: dict[str, UserStats] = {}
        self.user_media_stats: dict[str, MediaStats] = {}
        self.user_presences: dict[str, dict] = {}

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    def record_message(self, sender: str) -> UserStats:
        stats = self.user_stats.setdefault(sender, UserStats())
        stats.messages += 1
        stats.last_seen = datetime.now()
        return stats

    def record_media(self, sender: str, media_type: Optional[str]) -> MediaStats:
        """Count an inbound image/video; other media only bump ``last_updated``."""
        stats = self.user_media_stats.setdefault(sender, MediaStats())
        if media_type == "image":
            stats.images += 1
        elif media_type == "video":
            stats.videos += 1
        stats.last_updated = datetime.now()
        return stats

    def handle_presence(self, update: PresenceUpdate):
        entry = self.user_presences.setdefault(update.id, {"status": "offline"})
        presence = update.presences.get(update.id)
        if presence is None and update.presences:
            presence = next(iter(update.presences.values()))
        if presence is not None:
            entry["status"] = presence or "offline"
