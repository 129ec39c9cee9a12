"""Live speech recognizer using Deepgram streaming over a websocket.

Audio frames arrive on a queue from the recorder and a sender thread
forwards them as binary messages. A receiver thread turns every ``Results``
message into a batch of :class:`models.RecognitionResult`: ``is_final``
results will not be revised, anything else is interim and will be
superseded by the next message.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from queue import Empty, Queue
from typing import Any, Optional
from urllib.parse import urlencode

from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.sync.client import connect

from errors import RECOGNITION_ERROR, PipelineError
from interfaces import RecognitionErrorCallback, ResultsCallback
from models import AudioFrame, RecognitionResult

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"
CLOSE_STREAM = json.dumps({"type": "CloseStream"})


def load_message(raw: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return message if isinstance(message, dict) else {}


def results_from_message(message: dict[str, Any]) -> list[RecognitionResult]:
    """Map one streaming message to a batch; non-result messages map to []."""
    if message.get("type") != "Results":
        return []
    alternatives = (message.get("channel") or {}).get("alternatives") or []
    if not alternatives:
        return []
    text = str(alternatives[0].get("transcript") or "")
    if not text:
        return []
    return [RecognitionResult(text=text, is_final=bool(message.get("is_final")))]


class DeepgramLiveRecognizer:
    def __init__(
        self,
        api_key: str = "",
        model: str = "nova-2",
        language: str = "en-US",
        sample_rate: int = 16000,
        channels: int = 1,
        url: str = DEEPGRAM_LISTEN_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._sample_rate = sample_rate
        self._channels = channels
        self._url = url
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._connection: Any = None
        self._sender: Optional[threading.Thread] = None
        self._receiver: Optional[threading.Thread] = None
        self._on_results: Optional[ResultsCallback] = None
        self._on_error: Optional[RecognitionErrorCallback] = None

    def is_supported(self) -> bool:
        return bool(self._resolve_api_key())

    def stream_url(self) -> str:
        params = {
            "model": self._model,
            "language": self._language,
            "encoding": "linear16",
            "sample_rate": self._sample_rate,
            "channels": self._channels,
            "interim_results": "true",
            "punctuate": "true",
        }
        return f"{self._url}?{urlencode(params)}"

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_results: ResultsCallback,
        on_error: RecognitionErrorCallback,
    ) -> None:
        if self._connection is not None:
            return
        api_key = self._resolve_api_key()
        if not api_key:
            raise PipelineError(RECOGNITION_ERROR, "No API key configured")

        try:
            connection = connect(
                self.stream_url(),
                additional_headers={"Authorization": f"Token {api_key}"},
            )
        except Exception as exc:
            raise PipelineError(RECOGNITION_ERROR, str(exc) or type(exc).__name__) from exc

        with self._lock:
            self._on_results = on_results
            self._on_error = on_error
        self._connection = connection
        self._stop_event.clear()
        self._sender = threading.Thread(target=self._send_loop, args=(connection, audio_queue), daemon=True)
        self._receiver = threading.Thread(target=self._receive_loop, args=(connection,), daemon=True)
        self._sender.start()
        self._receiver.start()

    def stop(self) -> None:
        # Handlers go first so nothing from this session is delivered afterwards.
        self._detach()
        self._stop_event.set()
        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                connection.send(CLOSE_STREAM)
            except ConnectionClosed:
                pass
            except Exception as exc:
                logger.debug("could not send CloseStream: %s", exc)
            try:
                connection.close()
            except Exception as exc:
                logger.warning("error closing recognition stream: %s", exc)
        current = threading.current_thread()
        for thread in (self._sender, self._receiver):
            if thread is not None and thread.is_alive() and thread is not current:
                thread.join(timeout=0.5)
        self._sender = None
        self._receiver = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _resolve_api_key(self) -> str:
        return self._api_key or os.getenv("DEEPGRAM_API_KEY", "")

    def _detach(self) -> None:
        with self._lock:
            self._on_results = None
            self._on_error = None

    def _send_loop(self, connection: Any, audio_queue: Queue[AudioFrame | None]) -> None:
        """Forward audio frames until the sentinel or a stop request."""
        while not self._stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            try:
                if frame is None:
                    connection.send(CLOSE_STREAM)
                    return
                connection.send(frame.pcm16_bytes)
            except ConnectionClosed:
                return
            except Exception as exc:
                self._deliver_error(str(exc) or type(exc).__name__)
                return

    def _receive_loop(self, connection: Any) -> None:
        try:
            for raw in connection:
                if self._stop_event.is_set():
                    return
                message = load_message(raw)
                if message.get("type") == "Error":
                    self._deliver_error(str(message.get("description") or message.get("message") or "unknown"))
                    return
                batch = results_from_message(message)
                if batch:
                    self._deliver_results(batch)
        except ConnectionClosedOK:
            return
        except ConnectionClosed as exc:
            if not self._stop_event.is_set():
                reason = exc.rcvd.reason if exc.rcvd is not None else ""
                self._deliver_error(reason or "connection lost")

    def _deliver_results(self, batch: list[RecognitionResult]) -> None:
        with self._lock:
            callback = self._on_results
        if callback is not None:
            callback(batch)

    def _deliver_error(self, reason: str) -> None:
        with self._lock:
            callback = self._on_error
        if callback is not None:
            callback(reason)

