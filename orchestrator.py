"""Message send/retry orchestration for the chat widget.

One ``MessageOrchestrator`` owns the state a widget instance needs: the
rendered message list, the count of requests in flight and the exchange
counter the suggestion table keys off. Every user message becomes one
``send()`` call; several may be awaiting replies at the same time.

Retry policy per message (at most ``MAX_ATTEMPTS`` round trips):

* proxy error that carries a readable message -> show it, no retry
* proxy error without one                      -> retry, then generic text
* ok but blank reply                            -> retry, then "didn't catch that"
* connection failure / unreadable body          -> retry, then "hiccup"
* client deadline passed                        -> never retried
"""

import asyncio
import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from api_client import ChatApiResult, ChatRequestTimeout, ChatTransportError, TranscriptionError
from audio_capture import AudioCaptureAdapter, AudioCaptureError, CaptureSession, EncodedAudio
from logger import logger
from session import SessionIdentityProvider
from suggestions import SuggestionSet, choose_suggestions
from view import ChatView, Message, Sender

MAX_ATTEMPTS = 2

TROUBLE_TEXT = "I'm having trouble right now, please try again in a moment."
EMPTY_REPLY_TEXT = "I didn't catch that, could you send it again?"
TIMEOUT_TEXT = "I'm taking longer than usual, please try sending your message again."
HICCUP_TEXT = "I ran into a hiccup, please try again in a moment."
UNCLEAR_AUDIO_TEXT = "Could not understand audio. Please speak clearly and try again."
TRANSCRIPTION_ERROR_TEXT = "Error transcribing audio. Please try again."


class ChatApi(Protocol):
    async def post_chat(self, payload: Dict[str, Any], timeout: float) -> ChatApiResult: ...


class TranscriptionApi(Protocol):
    async def transcribe(self, audio_base64: str, mime_type: str) -> str: ...


@dataclass
class OrchestratorConfig:
    # must stay above the proxy's 55s attempt deadline so its message wins
    client_timeout: float = 58.0
    slow_notice_delay: float = 15.0
    server_error_backoff: float = 2.5
    empty_reply_backoff: float = 2.0
    network_error_backoff: float = 3.0


@dataclass
class PendingRequest:
    text: str
    request_id: int
    retry_count: int = 0
    notice_handle: Optional[asyncio.TimerHandle] = None
    notice_shown: bool = False


def _reply_text(data: Dict[str, Any]) -> Optional[str]:
    for key in ("response", "message"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MessageOrchestrator:
    def __init__(
        self,
        api: ChatApi,
        view: ChatView,
        session: SessionIdentityProvider,
        config: Optional[OrchestratorConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.view = view
        self.session = session
        self.config = config or OrchestratorConfig()
        self._sleep = sleep
        self.messages: List[Message] = []
        self.active_requests = 0
        self.exchange_count = 0
        self._request_ids = itertools.count(1)

    # --- rendering ---

    def _append(self, text: str, sender: Sender) -> Message:
        message = Message(text=text, sender=sender, order=len(self.messages))
        self.messages.append(message)
        self.view.add_message(message)
        return message

    def notify(self, text: str) -> Message:
        """Render a bot-side notice that did not come from the webhook."""
        return self._append(text, Sender.BOT)

    def begin_request(self) -> None:
        self.active_requests += 1
        self.view.show_typing()

    def end_request(self) -> None:
        self.active_requests = max(0, self.active_requests - 1)
        if self.active_requests == 0:
            self.view.hide_typing()

    @property
    def typing_visible(self) -> bool:
        return self.active_requests > 0

    # --- slow notice ---

    def _schedule_slow_notice(self, pending: PendingRequest) -> None:
        def show() -> None:
            pending.notice_shown = True
            self.view.show_slow_notice(pending.request_id)

        loop = asyncio.get_running_loop()
        pending.notice_handle = loop.call_later(self.config.slow_notice_delay, show)

    def _cancel_slow_notice(self, pending: PendingRequest) -> None:
        if pending.notice_handle is not None:
            pending.notice_handle.cancel()
            pending.notice_handle = None
        if pending.notice_shown:
            pending.notice_shown = False
            self.view.remove_slow_notice(pending.request_id)

    # --- sending ---

    async def send(self, text: str) -> Optional[Message]:
        """Send one user message and return the bot message rendered for it.

        Blank input is ignored and returns None.
        """
        text = text.strip()
        if not text:
            return None

        self._append(text, Sender.USER)
        self.begin_request()
        try:
            return await self._run(text)
        finally:
            self.end_request()

    async def _dispatch(self, pending: PendingRequest) -> ChatApiResult:
        if pending.retry_count == 0:
            self._schedule_slow_notice(pending)
        payload = {
            "message": pending.text,
            "timestamp": _now_iso(),
            "sessionId": self.session.get_session_id(),
        }
        try:
            return await self.api.post_chat(payload, timeout=self.config.client_timeout)
        finally:
            self._cancel_slow_notice(pending)

    async def _run(self, text: str) -> Message:
        pending = PendingRequest(text=text, request_id=next(self._request_ids))
        # the last attempt always returns, so the loop never falls through
        for attempt in range(MAX_ATTEMPTS):
            pending.retry_count = attempt
            can_retry = attempt + 1 < MAX_ATTEMPTS

            try:
                result = await self._dispatch(pending)
            except ChatRequestTimeout:
                logger.warning("Chat request timed out", attempt=attempt + 1)
                return self.notify(TIMEOUT_TEXT)
            except ChatTransportError as e:
                logger.error("Send error", attempt=attempt + 1, error=str(e))
                if can_retry:
                    await self._sleep(self.config.network_error_backoff)
                    continue
                return self.notify(HICCUP_TEXT)

            reply = _reply_text(result.data)

            if not result.ok:
                if reply:
                    return self.notify(reply)
                logger.warning("Chat proxy error without message", status_code=result.status_code)
                if can_retry:
                    await self._sleep(self.config.server_error_backoff)
                    continue
                return self.notify(TROUBLE_TEXT)

            if reply:
                return self._deliver(reply, result.data.get("suggestions"))

            logger.warning("Empty reply received", attempt=attempt + 1)
            if can_retry:
                await self._sleep(self.config.empty_reply_backoff)
                continue
            return self.notify(EMPTY_REPLY_TEXT)

    def _deliver(self, reply: str, payload_suggestions: Any) -> Message:
        message = self.notify(reply)
        self.exchange_count += 1
        chips = choose_suggestions(payload_suggestions, self.exchange_count)
        self.view.render_suggestions(SuggestionSet(prompts=chips, message_index=message.order))
        return message

    async def choose_suggestion(self, suggestions: SuggestionSet, index: int) -> Optional[Message]:
        prompt = suggestions.take(index)
        if prompt is None:
            return None
        return await self.send(prompt)


class VoiceInput:
    """Mic button behaviour: record, transcribe, then send as if typed."""

    def __init__(
        self,
        adapter: AudioCaptureAdapter,
        api: TranscriptionApi,
        orchestrator: MessageOrchestrator,
    ) -> None:
        self.adapter = adapter
        self.api = api
        self.orchestrator = orchestrator
        self._session: Optional[CaptureSession] = None
        self._starting = False

    @property
    def recording(self) -> bool:
        return self._session is not None

    async def start(self) -> bool:
        # a second press while the microphone is still opening is ignored
        if self._starting or self._session is not None:
            return False
        self._starting = True
        try:
            self._session = await self.adapter.start()
        except AudioCaptureError as e:
            logger.error("Error starting recording", error=str(e))
            self.orchestrator.notify(e.user_message)
            return False
        finally:
            self._starting = False
        self.orchestrator.view.set_recording(True)
        return True

    async def stop(self) -> Optional[Message]:
        session, self._session = self._session, None
        if session is None:
            return None
        self.orchestrator.view.set_recording(False)
        try:
            audio = await session.stop()
        except AudioCaptureError as e:
            return self.orchestrator.notify(e.user_message)
        return await self.transcribe_and_send(audio)

    async def toggle(self) -> Optional[Message]:
        if self._starting:
            return None
        if self.recording:
            return await self.stop()
        await self.start()
        return None

    async def transcribe_and_send(self, audio: EncodedAudio) -> Optional[Message]:
        self.orchestrator.begin_request()
        try:
            transcript = await self.api.transcribe(audio.to_base64(), audio.mime_type)
        except TranscriptionError as e:
            logger.error("Transcription error", error=str(e))
            return self.orchestrator.notify(TRANSCRIPTION_ERROR_TEXT)
        finally:
            self.orchestrator.end_request()

        transcript = transcript.strip()
        if not transcript:
            return self.orchestrator.notify(UNCLEAR_AUDIO_TEXT)
        return await self.orchestrator.send(transcript)
