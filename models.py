"""Core data models for the app."""

from __future__ import annotations

import mimetypes
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from errors import FILE_TOO_LARGE, UNSUPPORTED_TYPE, VALIDATION_ERROR, PipelineError

ALLOWED_TYPES = ("audio/mpeg", "audio/wav", "audio/x-m4a", "audio/mp4")
MAX_PAYLOAD_BYTES = 25 * 1024 * 1024  # 25MB

_EXTENSION_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/x-m4a",
    ".mp4": "audio/mp4",
}


def guess_mime_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class CaptureState(str, Enum):
    IDLE = "IDLE"
    FILE_SELECTED = "FILE_SELECTED"
    RECORDING = "RECORDING"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class AudioPayload:
    content: bytes
    mime_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    def validate(self) -> None:
        """Raise a validation error unless type and size are acceptable."""
        if self.mime_type not in ALLOWED_TYPES:
            raise PipelineError(VALIDATION_ERROR, UNSUPPORTED_TYPE)
        if self.size > MAX_PAYLOAD_BYTES:
            raise PipelineError(VALIDATION_ERROR, FILE_TOO_LARGE)

    @classmethod
    def from_path(cls, path: Path, mime_type: str | None = None) -> "AudioPayload":
        path = Path(path)
        return cls(
            content=path.read_bytes(),
            mime_type=mime_type or guess_mime_type(path.name),
            filename=path.name,
        )


@dataclass(frozen=True)
class StagedFile:
    path: Path
    size: int


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class TranscriptBuffer:
    finalized: str = ""
    interim: str = ""

    @property
    def displayed(self) -> str:
        return self.finalized + self.interim


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body = dict(self.metadata)
        body["text"] = self.text
        return body


@dataclass
class ViewSnapshot:
    transcript: str = ""
    error: str = ""
    is_loading: bool = False
    is_recording: bool = False


ViewCallback = Callable[[ViewSnapshot], None]


class ViewState:
    """UI-facing state shared by the capture controller and the submitter.

    Every mutation notifies ``on_change`` with a copy of the new state. At
    any time it holds nothing, an error, or a transcript, never both.
    """

    def __init__(self, on_change: Optional[ViewCallback] = None) -> None:
        self._lock = threading.RLock()
        self._snapshot = ViewSnapshot()
        self.on_change = on_change

    def snapshot(self) -> ViewSnapshot:
        with self._lock:
            return replace(self._snapshot)

    @property
    def transcript(self) -> str:
        return self._snapshot.transcript

    @property
    def error(self) -> str:
        return self._snapshot.error

    @property
    def is_loading(self) -> bool:
        return self._snapshot.is_loading

    @property
    def is_recording(self) -> bool:
        return self._snapshot.is_recording

    def update(self, **changes: Any) -> None:
        """Apply ``changes``; an error and a transcript are never shown together."""
        if changes.get("error"):
            changes["transcript"] = ""
        elif changes.get("transcript"):
            changes["error"] = ""
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)
            current = replace(self._snapshot)
        if self.on_change:
            self.on_change(current)
