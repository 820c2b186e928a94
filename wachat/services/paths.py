"""Flat-file helpers shared by the storage-backed services."""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger("wachat.services.paths")


def safe_jid(jid: str) -> str:
    """File-system safe form of a JID (``:``, ``@`` and ``.`` become ``_``)."""
    return re.sub(r"[:@.]", "_", jid)


def read_json(path: Path, default: Any = None) -> Any:
    """Load JSON from ``path``; ``default`` when missing or unparseable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return default


def write_json(path: Path, data: Any):
    """Write JSON via a temp file + rename so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
