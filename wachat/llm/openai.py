"""OpenAI-compatible provider (Groq, OpenAI, Together, etc.)."""

import asyncio
import base64
import logging
from typing import Optional

import httpx

from .provider import (
    ChatMessage,
    ChatResponse,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMProvider,
    LLMRateLimitError,
)

logger = logging.getLogger("wachat.llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider.

    Works with any OpenAI-compatible endpoint:
    - Groq:   https://api.groq.com/openai/v1 (default)
    - OpenAI: https://api.openai.com/v1
    - Together: https://api.together.xyz/v1
    """

    def __init__(
        self,
        api_key: str,
        chat_model: str = "llama-3.3-70b-versatile",
        vision_model: Optional[str] = None,
        base_url: str = "https://api.groq.com/openai/v1",
        provider_name: str = "groq",
        timeout: float = 120.0,
    ):
        self.api_key = api_key
        self.chat_model = chat_model
        self.vision_model = vision_model
        self.base_url = base_url.rstrip("/")
        self._provider_name = provider_name
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self._provider_name

    @property
    def supports_vision(self) -> bool:
        return bool(self.vision_model)

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _format_messages(messages: list[ChatMessage]) -> list[dict]:
        """Convert ChatMessages to OpenAI format.

        User messages carrying images become a list of content parts with
        the image inlined as a base64 data URL.
        """
        formatted = []
        for msg in messages:
            if msg.images and msg.role == "user":
                parts: list[dict] = [{"type": "text", "text": msg.content}]
                for img in msg.images:
                    b64 = base64.b64encode(img.data).decode("ascii")
                    parts.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:{img.mime_type};base64,{b64}"},
                    })
                formatted.append({"role": "user", "content": parts})
            else:
                formatted.append({"role": msg.role, "content": msg.content})
        return formatted

    @staticmethod
    def _raise_for_status(resp: httpx.Response):
        code = resp.status_code
        if code < 400:
            return
        detail = resp.text[:200]
        if code == 429:
            raise LLMRateLimitError(f"429: {detail}", status_code=code)
        if code in (401, 403):
            raise LLMAuthError(f"{code}: {detail}", status_code=code)
        if code == 400:
            raise LLMBadRequestError(f"400: {detail}", status_code=code)
        resp.raise_for_status()

    async def chat(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        has_images = any(m.images for m in messages)
        if model is None:
            model = self.vision_model if (has_images and self.vision_model) else self.chat_model

        body: dict = {
            "model": model,
            "messages": self._format_messages(messages),
            "temperature": temperature,
        }
        if max_tokens and max_tokens > 0:
            body["max_tokens"] = max_tokens

        logger.debug(f"Request: model={model}, messages={len(messages)}, images={has_images}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(2):
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=body,
                    headers=self._get_headers(),
                )
                if 500 <= resp.status_code < 600 and attempt < 1:
                    logger.warning(
                        f"{self._provider_name} {resp.status_code}, retrying in 1s "
                        f"(attempt {attempt + 1}/2): {resp.text[:200]}"
                    )
                    await asyncio.sleep(1)
                    continue
                if resp.status_code >= 400:
                    logger.error(f"{self._provider_name} API error: {resp.status_code} {resp.text[:200]}")
                self._raise_for_status(resp)
                break

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise LLMEmptyResponseError("No choices in completion response")

        content = ((choices[0].get("message") or {}).get("content") or "").strip()
        usage = data.get("usage") or {}

        return ChatResponse(
            content=content,
            model=data.get("model", model),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
