"""wachat — WhatsApp chat-bot with an LLM persona."""

__version__ = "2.0.0"
