"""AI replies: persona transcript + chat completion + voice transcription."""

import logging
from typing import Optional

import httpx

from ..errors import classify_error
from ..llm import ChatImage, ChatMessage, LLMEmptyResponseError, LLMError, LLMProvider, OpenAIProvider
from .memory import ConversationMemory
from .persona import build_system_prompt
from .voice import transcribe

logger = logging.getLogger("wachat.services.ai")

MISSING_KEY = "⚠️ Groq API key is missing in environment."
EMPTY_REPLY = "I couldn't process your request right now."


class AIService:
    """Generates persona replies for a sender, remembering the conversation."""

    def __init__(self, settings, provider: Optional[LLMProvider] = None, memory: Optional[ConversationMemory] = None):
        self.settings = settings
        self.memory = memory or ConversationMemory(
            settings.data_path,
            system_prompt=lambda name: build_system_prompt(name, settings),
            max_length=settings.memory_max_length,
        )
        if provider is None and settings.groq_api_key:
            provider = OpenAIProvider(
                api_key=settings.groq_api_key,
                chat_model=settings.chat_model,
                vision_model=settings.vision_model,
                base_url=settings.llm_base_url,
            )
        self.provider = provider

    async def reply(
        self,
        prompt: str,
        sender: str,
        user_name: str = "User",
        image: Optional[bytes] = None,
        media_type: Optional[str] = None,
    ) -> str:
        """Reply to ``prompt`` in the sender's conversation.

        Never raises: failures come back as a short user-facing string.
        """
        if not self.settings.groq_api_key or self.provider is None:
            return MISSING_KEY

        memory = self.memory.append(sender, "user", prompt, user_name=user_name)
        messages = [ChatMessage(role=m["role"], content=m["content"]) for m in memory]
        if image and not self.provider.supports_vision:
            logger.warning(f"{self.provider.name} has no vision model configured, answering {sender} from text only")
        elif image:
            # Images ride on the outgoing request only, the transcript stays text
            messages[-1].images = [ChatImage(data=image)]
            logger.info(f"Vision request for {sender} ({len(image)} bytes, media={media_type})")

        try:
            response = await self.provider.chat(
                messages,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
        except LLMEmptyResponseError:
            return EMPTY_REPLY
        except LLMError as e:
            logger.error(f"AI API error for {sender}: {e}")
            if e.status_code:
                return f"❌ AI error: {e.status_code}. Please check logs."
            return classify_error(e)
        except httpx.HTTPStatusError as e:
            logger.error(f"AI API error for {sender}: {e.response.status_code} {e.response.text[:200]}")
            return f"❌ AI error: {e.response.status_code}. Please check logs."
        except Exception as e:
            logger.error(f"AI service error for {sender}: {e}", exc_info=True)
            return classify_error(e)

        content = response.content.strip()
        if not content:
            return EMPTY_REPLY

        self.memory.append(sender, "assistant", content, user_name=user_name)
        self.memory.save(sender)
        logger.debug(f"AI reply for {sender}: {response.output_tokens} tokens via {self.provider.name}/{response.model}")
        return content

    async def transcribe(self, audio: bytes, mime_type: str = "audio/ogg") -> Optional[str]:
        return await transcribe(
            audio,
            api_key=self.settings.groq_api_key,
            model=self.settings.stt_model,
            mime_type=mime_type,
        )

    def reset(self, sender: str):
        self.memory.reset(sender)
