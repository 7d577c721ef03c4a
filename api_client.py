"""HTTP client the widget uses to reach the two proxy endpoints."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from logger import logger


class ChatRequestTimeout(Exception):
    """The client deadline passed before the proxy answered."""


class ChatTransportError(Exception):
    """Connection failure or an unreadable response body."""


class TranscriptionError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ChatApiResult:
    status_code: int
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WidgetApiClient:
    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        transcribe_timeout: float = 60.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport)
        self.transcribe_timeout = transcribe_timeout

    async def __aenter__(self) -> "WidgetApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_chat(self, payload: Dict[str, Any], timeout: float) -> ChatApiResult:
        """POST to ``/api/chat``; the request is abandoned once ``timeout`` passes."""
        try:
            response = await asyncio.wait_for(
                self._client.post("/api/chat", json=payload, timeout=timeout), timeout=timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ChatRequestTimeout(f"No reply within {timeout:g}s") from e
        except httpx.RequestError as e:
            raise ChatTransportError(str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ChatTransportError(f"Unreadable response body (HTTP {response.status_code})") from e
        return ChatApiResult(response.status_code, data if isinstance(data, dict) else {})

    async def transcribe(self, audio_base64: str, mime_type: str) -> str:
        try:
            response = await self._client.post(
                "/api/transcribe",
                json={"audio": audio_base64, "mimeType": mime_type},
                timeout=self.transcribe_timeout,
            )
        except httpx.RequestError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if response.is_error:
            logger.error("Transcription API error", status_code=response.status_code, body=response.text[:300])
            raise TranscriptionError(f"Transcription error: {response.status_code}", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TranscriptionError("Unreadable transcription response") from e
        transcript = data.get("transcript") if isinstance(data, dict) else None
        return transcript if isinstance(transcript, str) else ""
