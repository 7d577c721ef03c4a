"""Microphone capture for the voice path.

``AudioCaptureAdapter.start()`` negotiates an encoding with the platform
backend and returns a ``CaptureSession``; ``await session.stop()`` yields one
``EncodedAudio`` tagged with the encoding the recorder really used.
"""

import base64
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from logger import logger

AUDIO_CONSTRAINTS: Dict[str, bool] = {
    "echoCancellation": True,
    "noiseSuppression": True,
    "autoGainControl": True,
}

# most preferred first
CANDIDATE_MIME_TYPES: Sequence[str] = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/ogg",
    "audio/mp4;codecs=mp4a",
    "audio/mp4",
)

DEFAULT_MIME_TYPE = "audio/webm"


class AudioCaptureError(Exception):
    user_message = "Error recording audio. Please try again."


class MicrophoneUnavailableError(AudioCaptureError):
    user_message = "Could not access microphone. Please check permissions."


class EmptyRecordingError(AudioCaptureError):
    user_message = "No audio was captured. Please try again."


@dataclass(frozen=True)
class EncodedAudio:
    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class Recorder(Protocol):
    # encoding actually negotiated; may differ from what was asked for
    mime_type: str

    def start(self, sink: Callable[[bytes], None]) -> None: ...

    async def stop(self) -> None: ...

    def close(self) -> None: ...


class CaptureBackend(Protocol):
    def is_type_supported(self, mime_type: str) -> bool: ...

    async def open_recorder(self, constraints: Dict[str, Any], mime_type: Optional[str]) -> Recorder: ...


class CaptureSession:
    def __init__(self, recorder: Recorder, requested_mime_type: str) -> None:
        self._recorder = recorder
        self._requested_mime_type = requested_mime_type
        self._chunks: List[bytes] = []
        self._stopped = False

    @property
    def mime_type(self) -> str:
        return self._recorder.mime_type or self._requested_mime_type or DEFAULT_MIME_TYPE

    def _on_chunk(self, chunk: bytes) -> None:
        if chunk:
            self._chunks.append(chunk)

    async def stop(self) -> EncodedAudio:
        """Stop recording, release the microphone and return the assembled audio.

        Raises:
            EmptyRecordingError: nothing was captured
        """
        if self._stopped:
            raise AudioCaptureError("Capture session already stopped")
        self._stopped = True
        try:
            await self._recorder.stop()
        finally:
            self._recorder.close()

        data = b"".join(self._chunks)
        if not data:
            logger.warning("Recording produced no audio", mime_type=self.mime_type)
            raise EmptyRecordingError("Recording is empty")
        return EncodedAudio(data=data, mime_type=self.mime_type)


class AudioCaptureAdapter:
    def __init__(self, backend: CaptureBackend, candidates: Sequence[str] = CANDIDATE_MIME_TYPES) -> None:
        self.backend = backend
        self.candidates = tuple(candidates)

    def select_mime_type(self) -> str:
        for mime_type in self.candidates:
            if self.backend.is_type_supported(mime_type):
                return mime_type
        return ""

    async def start(self) -> CaptureSession:
        """Open the microphone and begin buffering encoded chunks.

        Raises:
            MicrophoneUnavailableError: the backend could not open an input device
        """
        mime_type = self.select_mime_type()
        recorder = await self.backend.open_recorder(AUDIO_CONSTRAINTS, mime_type or None)
        session = CaptureSession(recorder, mime_type)
        recorder.start(session._on_chunk)
        logger.info("Recording started", requested_mime_type=mime_type, mime_type=session.mime_type)
        return session
