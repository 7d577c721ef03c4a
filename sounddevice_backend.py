"""Capture backend for the default input device via PortAudio.

PortAudio hands back raw PCM, so encoding happens once at stop with
libsndfile. Which containers are available depends on the libsndfile build,
hence the probing in ``is_type_supported``.
"""

import asyncio
import io
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import sounddevice as sd
import soundfile as sf

from audio_capture import MicrophoneUnavailableError
from logger import logger

# mime type -> (libsndfile format, subtype)
SOUNDFILE_FORMATS: Dict[str, Tuple[str, str]] = {
    "audio/ogg;codecs=opus": ("OGG", "OPUS"),
    "audio/ogg": ("OGG", "VORBIS"),
    "audio/wav": ("WAV", "PCM_16"),
}
FALLBACK_MIME_TYPE = "audio/wav"


class SoundDeviceRecorder:
    def __init__(self, mime_type: str, samplerate: int, channels: int, device: Optional[Any]) -> None:
        self.mime_type = mime_type
        self.samplerate = samplerate
        self.channels = channels
        self._frames: List[np.ndarray] = []
        self._sink: Optional[Callable[[bytes], None]] = None
        try:
            self._stream = sd.InputStream(
                samplerate=samplerate,
                channels=channels,
                dtype="float32",
                device=device,
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise MicrophoneUnavailableError(str(e)) from e

    def _callback(self, indata: np.ndarray, frames: int, time: Any, status: sd.CallbackFlags) -> None:
        if status:
            logger.warning("Input stream status", status=str(status))
        self._frames.append(indata.copy())

    def start(self, sink: Callable[[bytes], None]) -> None:
        self._sink = sink
        self._stream.start()

    async def stop(self) -> None:
        self._stream.stop()
        if not self._frames or self._sink is None:
            return
        frames, self._frames = self._frames, []
        self._sink(await asyncio.to_thread(self._encode, np.concatenate(frames)))

    def close(self) -> None:
        self._stream.close()

    def _encode(self, samples: np.ndarray) -> bytes:
        container, subtype = SOUNDFILE_FORMATS[self.mime_type]
        buffer = io.BytesIO()
        sf.write(buffer, samples, self.samplerate, format=container, subtype=subtype)
        return buffer.getvalue()


class SoundDeviceBackend:
    def __init__(self, samplerate: int = 48000, channels: int = 1, device: Optional[Any] = None) -> None:
        self.samplerate = samplerate
        self.channels = channels
        self.device = device

    def is_type_supported(self, mime_type: str) -> bool:
        fmt = SOUNDFILE_FORMATS.get(mime_type)
        if fmt is None:
            return False
        container, subtype = fmt
        return subtype in sf.available_subtypes(container)

    async def open_recorder(self, constraints: Dict[str, Any], mime_type: Optional[str]) -> SoundDeviceRecorder:
        # PortAudio has no echo/noise/gain processing; the OS input chain owns it
        logger.debug("Opening input stream", constraints=constraints, device=str(self.device))
        return SoundDeviceRecorder(mime_type or FALLBACK_MIME_TYPE, self.samplerate, self.channels, self.device)
