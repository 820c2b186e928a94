"""Shared utilities for wachat CLI commands."""

from rich.console import Console

from wachat.config import WachatSettings, load_settings

console = Console()


def get_settings() -> WachatSettings:
    """Settings for CLI commands (same sources as the bot: env + .env)."""
    return load_settings()
