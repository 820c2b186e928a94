"""Error types and user-facing error classification."""

import asyncio

import httpx

from .llm.provider import LLMRateLimitError, LLMAuthError, LLMBadRequestError, LLMEmptyResponseError


class TransportError(Exception):
    """The messaging client failed to perform an operation."""


class ConnectionClosedError(TransportError):
    """The connection dropped while sending; the send may be retried."""


class DownloadError(Exception):
    """Every provider in a download chain failed."""


def classify_error(e: Exception) -> str:
    """Classify any exception into a user-friendly message.

    Returns a short string suitable for sending directly to the chat.
    """
    # 1-4: Typed LLM exceptions
    if isinstance(e, LLMRateLimitError):
        return "Rate limited. Please wait a moment and try again."
    if isinstance(e, LLMAuthError):
        return "Authentication error. Owner may need to refresh the API key."
    if isinstance(e, LLMBadRequestError):
        return "AI rejected the request. This may be a conversation format issue."
    if isinstance(e, LLMEmptyResponseError):
        return "AI returned an empty response. Please try again."

    # 5: httpx HTTP status errors
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if code == 429:
            return "Rate limited. Please wait a moment and try again."
        if code in (401, 403):
            return "Authentication error. Owner may need to refresh the API key."
        if code == 400:
            return "AI rejected the request. This may be a conversation format issue."
        if 500 <= code < 600:
            return "AI provider is having server issues. Please try again later."
        return f"AI provider returned HTTP {code}. Please try again later."

    # 6: Delivery / download failures
    if isinstance(e, ConnectionClosedError):
        return "WhatsApp connection dropped. Please try again in a moment."
    if isinstance(e, DownloadError):
        return "All download providers failed. Please try again later."

    # 7-8: Network / timeout errors
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to AI provider. Please check connectivity and try again."
    if isinstance(e, (httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout, httpx.ConnectTimeout)):
        return "Request timed out. Please try again."
    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out. Please try again."

    # 9: Unexpected response shape
    if isinstance(e, (KeyError, IndexError)):
        return "Unexpected response format from AI provider. Please try again."

    # 10: Fallback, include type name for debugging
    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Check logs for details."
