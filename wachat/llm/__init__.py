"""LLM providers."""

from .provider import (
    ChatImage,
    ChatMessage,
    ChatResponse,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
)
from .openai import OpenAIProvider

__all__ = [
    "ChatImage",
    "ChatMessage",
    "ChatResponse",
    "LLMAuthError",
    "LLMBadRequestError",
    "LLMEmptyResponseError",
    "LLMError",
    "LLMProvider",
    "LLMRateLimitError",
    "OpenAIProvider",
]
