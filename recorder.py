"""Microphone recorder adapter."""

from __future__ import annotations

import io
import logging
import threading
import time
import wave
from queue import Full, Queue
from typing import Any, Callable, Optional

import numpy as np

from errors import MICROPHONE_UNAVAILABLE, PipelineError
from models import MAX_PAYLOAD_BYTES, AudioFrame

try:
    import sounddevice as sd
except OSError:  # pragma: no cover - PortAudio library missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

WAV_HEADER_BYTES = 44


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        max_bytes: int = MAX_PAYLOAD_BYTES - WAV_HEADER_BYTES,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        frame_bytes = 2 * channels
        self.max_bytes = max_bytes - max_bytes % frame_bytes
        self.limit_reached = False
        self._on_limit: Optional[Callable[[], None]] = None
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None
        self._captured = bytearray()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_limit: Optional[Callable[[], None]] = None,
    ) -> None:
        """Open the input stream.

        Once ``max_bytes`` of PCM have been captured, further audio is
        discarded and ``on_limit`` is called once from a helper thread.
        """
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise PipelineError(MICROPHONE_UNAVAILABLE, "sounddevice is not available")
            self._audio_queue = audio_queue
            self._captured = bytearray()
            self.dropped_chunks = 0
            self.limit_reached = False
            self._on_limit = on_limit
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                raise PipelineError(MICROPHONE_UNAVAILABLE, str(exc)) from exc
            self._running = True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                self._emit_sentinel_if_needed()
                return
            self._running = False
            if self._stream is not None:
                self._stream.stop()
                self._stream.close()
                self._stream = None
            self._emit_sentinel_if_needed()
            if self.dropped_chunks:
                logger.warning("recognizer queue full, dropped %d chunks", self.dropped_chunks)

    def take_recording(self) -> bytes:
        """Return the PCM captured since the last start and forget it."""
        with self._lock:
            pcm = bytes(self._captured)
            self._captured = bytearray()
        return pcm

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if self.limit_reached:
            return
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        room = self.max_bytes - len(self._captured)
        if len(payload) >= room:
            payload = payload[:room]
            self._reach_limit()
        if not payload:
            return
        self._captured.extend(payload)
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _reach_limit(self) -> None:
        self.limit_reached = True
        logger.warning("recording reached %d bytes, discarding further audio", self.max_bytes)
        # Stopping the stream from inside its own callback is not allowed.
        if self._on_limit is not None:
            threading.Thread(target=self._on_limit, daemon=True).start()

    def _emit_sentinel_if_needed(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            pass
