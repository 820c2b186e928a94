"""Inbound message handling: commands, AI replies, directive tokens."""

from .message import MessageHandler

__all__ = ["MessageHandler"]
