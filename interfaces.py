"""Protocol interfaces used by the controllers and the gateway."""

from __future__ import annotations

from queue import Queue
from typing import BinaryIO, Callable, Optional, Protocol, Sequence

from models import AudioFrame, AudioPayload, RecognitionResult, TranscriptionResult

ResultsCallback = Callable[[Sequence[RecognitionResult]], None]
RecognitionErrorCallback = Callable[[str], None]


class Recorder(Protocol):
    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_limit: Optional[Callable[[], None]] = None,
    ) -> None: ...

    def stop(self) -> None: ...

    def take_recording(self) -> bytes: ...


class SpeechRecognizer(Protocol):
    def is_supported(self) -> bool: ...

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_results: ResultsCallback,
        on_error: RecognitionErrorCallback,
    ) -> None: ...

    def stop(self) -> None: ...


class Playback(Protocol):
    def play(self) -> None: ...

    def revoke(self) -> None: ...


PlaybackFactory = Callable[[AudioPayload], Playback]


class TranscriptionBackend(Protocol):
    name: str

    def transcribe(self, stream: BinaryIO, filename: str) -> TranscriptionResult: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_gateway_url(self) -> str: ...

    def set_gateway_url(self, url: str) -> None: ...

    def get_language(self) -> str: ...
