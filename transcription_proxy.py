"""Transcription proxy: base64 audio in, Deepgram transcript out."""

import base64
import binascii
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from errors import ClientInputError, ConfigurationError, TranscriptionFailed
from logger import logger
from models import TranscribeRequest, TranscribeResponse
from settings import Settings

DEFAULT_MIME_TYPE = "audio/webm;codecs=opus"

# browser-reported container types -> types Deepgram accepts
MIME_ALIASES: Dict[str, str] = {
    "audio/x-m4a": "audio/mp4",
    "audio/mpeg": "audio/mp3",
    "video/webm": "audio/webm",
    "video/mp4": "audio/mp4",
}

DATA_URL_RE = re.compile(r"^data:([^;,]+)(?:;[^,]*)?;base64,(.+)$", re.DOTALL)


def split_data_url(audio: str, declared_mime: Optional[str]) -> Tuple[str, str]:
    """Return ``(base64_data, mime_type)``; a data URL's own type beats the declared one."""
    mime_type = declared_mime or DEFAULT_MIME_TYPE
    if not audio.startswith("data:"):
        return audio, mime_type

    match = DATA_URL_RE.match(audio)
    if not match:
        raise ClientInputError("Malformed audio data URL")
    return match.group(2), match.group(1)


def decode_audio(base64_data: str) -> bytes:
    try:
        audio = base64.b64decode(base64_data)
    except (binascii.Error, ValueError) as e:
        logger.warning("Failed to decode base64 audio", error=str(e))
        raise ClientInputError("Invalid base64 audio data") from e
    if not audio:
        raise ClientInputError("Audio buffer is empty after decoding")
    return audio


def normalize_mime_type(mime_type: str) -> str:
    """Strip codec parameters and map aliases: ``video/webm;codecs=opus`` -> ``audio/webm``."""
    base_type = mime_type.split(";")[0].strip().lower()
    return MIME_ALIASES.get(base_type, base_type)


def extract_transcript(data: Any) -> str:
    try:
        transcript = data["results"]["channels"][0]["alternatives"][0]["transcript"]
    except (KeyError, IndexError, TypeError):
        return ""
    return transcript if isinstance(transcript, str) else ""


class DeepgramTranscriber:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport

    async def transcribe(self, req: TranscribeRequest) -> TranscribeResponse:
        if not req.audio:
            raise ClientInputError("Audio data is required")

        if not self.settings.DEEPGRAM_API_KEY:
            logger.error("DEEPGRAM_API_KEY not configured")
            raise ConfigurationError("DEEPGRAM_API_KEY not configured", fallback="")

        base64_data, raw_mime = split_data_url(req.audio, req.mimeType)
        audio = decode_audio(base64_data)
        content_type = normalize_mime_type(raw_mime)

        logger.info(
            "Transcribing audio",
            size_bytes=len(audio),
            raw_mime_type=raw_mime,
            content_type=content_type,
        )

        data = await self._call_engine(audio, content_type)
        transcript = extract_transcript(data)
        if not transcript:
            # silence is not an error; the widget decides what to show
            logger.warning("Deepgram returned empty transcript")
        return TranscribeResponse(transcript=transcript, success=True)

    async def _call_engine(self, audio: bytes, content_type: str) -> Any:
        params = {
            "model": self.settings.DEEPGRAM_MODEL,
            "smart_format": "true",
            "punctuate": "true",
            "language": self.settings.DEEPGRAM_LANGUAGE,
        }
        headers = {
            "Authorization": f"Token {self.settings.DEEPGRAM_API_KEY}",
            "Content-Type": content_type,
        }
        async with httpx.AsyncClient(
            timeout=self.settings.TRANSCRIBE_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    self.settings.DEEPGRAM_URL, params=params, headers=headers, content=audio
                )
            except httpx.RequestError as e:
                logger.error("Deepgram request failed", error=str(e))
                raise TranscriptionFailed(f"Deepgram request failed: {e}") from e

        if response.is_error:
            logger.error("Deepgram API error", status_code=response.status_code, body=response.text[:300])
            raise TranscriptionFailed(
                f"Deepgram API error: {response.status_code} - {response.text[:300]}"
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("Failed to parse Deepgram response", body=response.text[:300])
            raise TranscriptionFailed("Invalid JSON from Deepgram") from e
