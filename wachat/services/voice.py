"""Voice note transcription via the Groq Whisper API."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger("wachat.services.voice")

GROQ_WHISPER_ENDPOINT = "https://api.groq.com/openai/v1/audio/transcriptions"
DEFAULT_STT_MODEL = "whisper-large-v3"


async def transcribe(
    audio_data: bytes,
    api_key: Optional[str],
    model: str = DEFAULT_STT_MODEL,
    filename: str = "voice.ogg",
    mime_type: str = "audio/ogg",
) -> Optional[str]:
    """Transcribe audio bytes. Returns the text, or None on any failure."""
    if not api_key:
        logger.warning("Transcription skipped: no Groq API key configured")
        return None
    if not audio_data:
        return None

    # Groq Whisper API follows OpenAI's multipart format
    files = {"file": (filename, audio_data, mime_type)}
    data = {"model": model}

    try:
        async with httpx.AsyncClient(timeout=60) as client:
            response = await client.post(
                GROQ_WHISPER_ENDPOINT,
                headers={"Authorization": f"Bearer {api_key}"},
                files=files,
                data=data,
            )
        if response.status_code != 200:
            logger.error(f"Groq Whisper API error: {response.status_code} - {response.text[:300]}")
            return None

        text = (response.json().get("text") or "").strip()
        if not text:
            return None
        logger.info(f"Transcribed {len(audio_data)} bytes -> {len(text)} chars")
        return text

    except httpx.TimeoutException:
        logger.error("Transcription request timed out (60s)")
        return None
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Transcription error: {e}")
        return None
