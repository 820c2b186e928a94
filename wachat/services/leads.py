"""Shared registry of business leads captured from conversations."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from .paths import read_json, write_json

logger = logging.getLogger("wachat.services.leads")


class LeadStore:
    def __init__(self, path: Path):
        self.path = path

    def all_leads(self) -> list[dict]:
        leads = read_json(self.path, default=[])
        return leads if isinstance(leads, list) else []

    def add_lead(self, jid: str, name: str, project: str) -> bool:
        """Append a lead; False when this jid already has the same project."""
        leads = self.all_leads()
        if any(l.get("jid") == jid and l.get("project") == project for l in leads):
            return False
        leads.append({
            "jid": jid,
            "name": name,
            "project": project,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        write_json(self.path, leads)
        logger.info(f"New lead captured: {name} - {project}")
        return True
