"""State-machine based audio capture: file selection or live recording."""

from __future__ import annotations

import logging
import threading
import time
from functools import partial
from queue import Queue
from typing import Callable, Optional, Sequence

from audio_context import PlaybackHandle
from errors import MICROPHONE_UNAVAILABLE, PipelineError
from interfaces import Playback, PlaybackFactory, Recorder, SpeechRecognizer
from models import (
    AudioFrame,
    AudioPayload,
    CaptureState,
    RecognitionResult,
    TranscriptBuffer,
    ViewState,
)
from recorder import pcm_to_wav

logger = logging.getLogger(__name__)

StateCallback = Callable[[CaptureState, CaptureState], None]


def reduce_transcript(buffer: TranscriptBuffer, batch: Sequence[RecognitionResult]) -> TranscriptBuffer:
    """Apply one recognition batch.

    Final results are appended to the finalized text, each followed by a
    space. Interim results replace the previous interim text entirely.
    """
    finalized = buffer.finalized
    interim = ""
    for result in batch:
        if result.is_final:
            finalized += result.text + " "
        else:
            interim += result.text
    return TranscriptBuffer(finalized=finalized, interim=interim)


class CaptureController:
    def __init__(
        self,
        recorder: Recorder,
        recognizer: SpeechRecognizer,
        view: Optional[ViewState] = None,
        playback_factory: PlaybackFactory = PlaybackHandle,
        sample_rate: int = 16000,
        channels: int = 1,
        queue_maxsize: int = 50,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._recognizer = recognizer
        self._view = view or ViewState()
        self._playback_factory = playback_factory
        self._sample_rate = sample_rate
        self._channels = channels
        self._queue_maxsize = queue_maxsize
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = CaptureState.IDLE
        self._session_id = 0
        self._buffer = TranscriptBuffer()
        self._payload: Optional[AudioPayload] = None
        self._playback: Optional[Playback] = None
        self._disposed = False
        self.live_capture_supported = bool(recognizer.is_supported())

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def payload(self) -> Optional[AudioPayload]:
        return self._payload

    @property
    def playback(self) -> Optional[Playback]:
        return self._playback

    @property
    def transcript(self) -> TranscriptBuffer:
        return self._buffer

    @property
    def view(self) -> ViewState:
        return self._view

    def select_file(self, candidate: AudioPayload) -> bool:
        with self._lock:
            self._view.update(error="")
            try:
                candidate.validate()
            except PipelineError as exc:
                self._view.update(error=exc.message)
                return False

            if self._state == CaptureState.RECORDING:
                # The selected file wins; the captured audio is dropped.
                self._end_session(keep_recording=False)
            self._replace_payload(candidate)
            self._transition(CaptureState.FILE_SELECTED)
            return True

    def start_recording(self) -> bool:
        with self._lock:
            if self._disposed or not self.live_capture_supported:
                return False
            if self._state not in (CaptureState.IDLE, CaptureState.FILE_SELECTED):
                return False

            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            self._session_id += 1
            session_id = self._session_id
            try:
                self._recorder.start(audio_queue, partial(self._handle_capture_limit, session_id))
            except Exception as exc:
                logger.error("Error accessing microphone: %s", exc)
                self._view.update(error=PipelineError(MICROPHONE_UNAVAILABLE).message)
                return False

            try:
                self._recognizer.start(
                    audio_queue,
                    partial(self._handle_results, session_id),
                    partial(self._handle_error, session_id),
                )
            except Exception as exc:
                logger.error("Error starting speech recognition: %s", exc)
                self._safe_stop_recorder()
                self._recorder.take_recording()
                self._session_id += 1
                self._view.update(error=f"Speech recognition error: {_reason(exc)}")
                return False

            self._buffer = TranscriptBuffer()
            self._view.update(transcript="", error="", is_recording=True)
            self._transition(CaptureState.RECORDING)
            return True

    def stop_recording(self) -> None:
        with self._lock:
            if self._state != CaptureState.RECORDING:
                return
            self._end_session(keep_recording=True)

    def dispose(self) -> None:
        with self._lock:
            if self._state == CaptureState.RECORDING:
                self._end_session(keep_recording=False)
            else:
                self._session_id += 1
                self._safe_stop_recognizer()
                self._safe_stop_recorder()
            if self._playback is not None:
                self._playback.revoke()
                self._playback = None
            self._payload = None
            self._disposed = True
            self._transition(CaptureState.IDLE)

    def _handle_results(self, session_id: int, batch: Sequence[RecognitionResult]) -> None:
        with self._lock:
            if session_id != self._session_id or self._state != CaptureState.RECORDING:
                logger.debug("dropping results for stale session %s", session_id)
                return
            self._buffer = reduce_transcript(self._buffer, batch)
            self._view.update(transcript=self._buffer.displayed)

    def _handle_capture_limit(self, session_id: int) -> None:
        with self._lock:
            if session_id != self._session_id or self._state != CaptureState.RECORDING:
                return
            logger.warning("recording hit the size limit, stopping")
            self._end_session(keep_recording=True)

    def _handle_error(self, session_id: int, reason: str) -> None:
        with self._lock:
            if session_id != self._session_id or self._state != CaptureState.RECORDING:
                logger.debug("dropping error for stale session %s", session_id)
                return
            logger.error("Speech recognition error: %s", reason)
            self._end_session(keep_recording=False)
            self._view.update(error=f"Speech recognition error: {reason}")

    def _end_session(self, keep_recording: bool) -> None:
        """Release both capture handles and leave the recording state."""
        self._session_id += 1
        self._safe_stop_recognizer()
        self._safe_stop_recorder()
        pcm = self._recorder.take_recording()
        self._view.update(is_recording=False)

        if keep_recording and pcm:
            recorded = AudioPayload(
                content=pcm_to_wav(pcm, self._sample_rate, self._channels),
                mime_type="audio/wav",
                filename=f"recording-{int(time.time() * 1000)}.wav",
            )
            try:
                recorded.validate()
            except PipelineError as exc:
                self._view.update(error=exc.message)
            else:
                self._replace_payload(recorded)

        self._transition(CaptureState.FILE_SELECTED if self._payload else CaptureState.IDLE)

    def _replace_payload(self, payload: AudioPayload) -> None:
        if self._playback is not None:
            self._playback.revoke()
        self._payload = payload
        self._playback = self._playback_factory(payload)

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception as exc:
            logger.warning("error releasing microphone: %s", exc)

    def _safe_stop_recognizer(self) -> None:
        try:
            self._recognizer.stop()
        except Exception as exc:
            logger.warning("error stopping recognizer: %s", exc)

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _reason(exc: Exception) -> str:
    if isinstance(exc, PipelineError):
        return exc.message
    return str(exc) or type(exc).__name__
