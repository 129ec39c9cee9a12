"""Process-wide audio output with an explicit lifecycle, plus payload previews."""

from __future__ import annotations

import io
import logging
import threading
import wave
from typing import Any, Callable, Optional

import numpy as np

from errors import PLAYBACK_UNSUPPORTED, PipelineError
from models import AudioPayload

try:
    import sounddevice as sd
except OSError:  # pragma: no cover - PortAudio library missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

CLOSED = "closed"
RUNNING = "running"
SUSPENDED = "suspended"


class AudioContext:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._stream: Any = None
        self._format: tuple[int, int] | None = None
        self._state = CLOSED

    @property
    def state(self) -> str:
        return self._state

    def is_available(self) -> bool:
        return self._stream is not None and self._state == RUNNING

    def acquire(self, sample_rate: int = 16000, channels: int = 1) -> "AudioContext":
        """Create the output stream, or resume it if suspended.

        Re-entry while running with the same format is a no-op; a different
        format replaces the stream.
        """
        with self._lock:
            if sd is None:
                raise PipelineError(PLAYBACK_UNSUPPORTED, "Audio output is not supported on this system")
            if self._stream is not None and self._format != (sample_rate, channels):
                self._close_stream()
            if self._stream is None:
                self._stream = sd.OutputStream(
                    samplerate=sample_rate,
                    channels=channels,
                    dtype="int16",
                )
                self._format = (sample_rate, channels)
                self._stream.start()
            elif self._state == SUSPENDED:
                self._stream.start()
            self._state = RUNNING
            return self

    def suspend(self) -> None:
        with self._lock:
            if self._stream is None or self._state != RUNNING:
                return
            self._stream.stop()
            self._state = SUSPENDED

    def release(self) -> None:
        with self._lock:
            self._close_stream()

    def write(self, samples: np.ndarray) -> None:
        with self._lock:
            if not self.is_available():
                raise PipelineError(PLAYBACK_UNSUPPORTED, "Audio context is not running")
            self._stream.write(samples)

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        self._format = None
        self._state = CLOSED
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            logger.warning("Error closing audio output: %s", exc)


_context: Optional[AudioContext] = None
_context_lock = threading.Lock()


def get_audio_context() -> AudioContext:
    global _context
    with _context_lock:
        if _context is None:
            _context = AudioContext()
        return _context


def close_audio_context() -> None:
    global _context
    with _context_lock:
        context, _context = _context, None
    if context is not None:
        context.release()


class PlaybackHandle:
    """Preview handle for one payload; revoked when the payload is replaced."""

    def __init__(
        self,
        payload: AudioPayload,
        context_provider: Callable[[], AudioContext] = get_audio_context,
        chunk_frames: int = 4096,
    ) -> None:
        self.payload = payload
        self._context_provider = context_provider
        self._chunk_frames = chunk_frames
        self._revoked = threading.Event()

    @property
    def revoked(self) -> bool:
        return self._revoked.is_set()

    def play(self) -> None:
        if self.revoked:
            return
        if self.payload.mime_type != "audio/wav":
            raise PipelineError(PLAYBACK_UNSUPPORTED)
        try:
            with wave.open(io.BytesIO(self.payload.content), "rb") as wf:
                if wf.getsampwidth() != 2:
                    raise PipelineError(PLAYBACK_UNSUPPORTED, "Only 16-bit WAV audio can be previewed")
                channels = wf.getnchannels()
                sample_rate = wf.getframerate()
                pcm = wf.readframes(wf.getnframes())
        except (wave.Error, EOFError) as exc:
            raise PipelineError(PLAYBACK_UNSUPPORTED, f"Unreadable WAV audio: {exc}") from exc

        samples = np.frombuffer(pcm, dtype=np.int16).reshape(-1, channels)
        context = self._context_provider().acquire(sample_rate, channels)
        for offset in range(0, len(samples), self._chunk_frames):
            if self.revoked:
                return
            context.write(samples[offset : offset + self._chunk_frames])

    def revoke(self) -> None:
        self._revoked.set()
