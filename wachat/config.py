"""wachat configuration management."""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("wachat.config")


class WachatSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Storage
    data_dir: str = Field(default="user_files", description="Root for sandbox, profiles, leads, histories, QR")
    log_file: str = Field(default="~/wachat.log", description="Application log file")

    # WhatsApp client (wacli)
    wacli_path: str = Field(default="wacli", description="wacli binary")
    wacli_home: str = Field(default="~/.wacli", description="wacli store dir (session + messages DB)")

    # Owner / persona
    owner_jid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("WACHAT_OWNER_JID", "OWNER_JID"),
        description="JID allowed to run owner-only commands",
    )
    bot_name: str = Field(default="Mazhar DevX Elite", description="Display name used in menus")
    owner_name: str = Field(default="mazhar.devx", description="Owner handle shown in menus")
    persona_name: str = Field(default="Mazhar", description="Name the persona speaks as")
    keyword: str = Field(default="mazhar", description="Trigger word for owner commands (e.g. '<keyword> nuke')")
    persona_file: Optional[str] = Field(default=None, description="Optional file overriding the system prompt")
    owner_images: list[str] = Field(
        default_factory=lambda: [
            "assets/owner/owner1.jpg",
            "assets/owner/owner2.jpeg",
            "assets/owner/owner3.jpeg",
        ],
        description="Photos sent for the owner-photo directive",
    )

    # LLM (Groq, OpenAI-compatible)
    groq_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("WACHAT_GROQ_API_KEY", "GROQ_API_KEY"),
        description="Groq API key (chat + speech-to-text)",
    )
    llm_base_url: str = Field(default="https://api.groq.com/openai/v1")
    chat_model: str = Field(default="llama-3.3-70b-versatile")
    vision_model: str = Field(default="meta-llama/llama-4-scout-17b-16e-instruct")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, gt=0)
    memory_max_length: int = Field(default=12, ge=3, description="Transcript window incl. system prompt")
    stt_model: str = Field(default="whisper-large-v3")

    # QR web server
    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=3000)

    # Delivery / reconnect
    send_retries: int = Field(default=3, ge=1)
    send_retry_delay: float = Field(default=2.0, ge=0.0)
    reconnect_delay: float = Field(default=5.0, ge=0.0)
    conflict_reconnect_delay: float = Field(default=20.0, ge=0.0)
    boot_retry_delay: float = Field(default=10.0, ge=0.0)
    max_conflicts: int = Field(default=2, ge=1)

    model_config = {"env_prefix": "WACHAT_", "env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @property
    def data_path(self) -> Path:
        return Path(os.path.expanduser(self.data_dir))

    @property
    def qr_path(self) -> Path:
        return self.data_path / "login-qr.png"

    def is_owner(self, jid: str) -> bool:
        return bool(self.owner_jid) and jid == self.owner_jid


def load_settings() -> WachatSettings:
    """Load settings from environment."""
    settings = WachatSettings()

    if not settings.groq_api_key:
        logger.warning(
            "No Groq API key configured (GROQ_API_KEY / WACHAT_GROQ_API_KEY). "
            "AI replies and voice transcription will be unavailable."
        )
    if not settings.owner_jid:
        logger.info("OWNER_JID not set — owner-only commands are disabled.")

    return settings
