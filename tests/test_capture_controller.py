from __future__ import annotations

from queue import Queue
from typing import Callable

from capture_controller import CaptureController, reduce_transcript
from errors import FILE_TOO_LARGE, UNSUPPORTED_TYPE, PipelineError
from models import (
    MAX_PAYLOAD_BYTES,
    AudioFrame,
    AudioPayload,
    CaptureState,
    RecognitionResult,
    TranscriptBuffer,
    ViewState,
)


class FakeRecorder:
    def __init__(self, pcm: bytes = b"", fail: bool = False) -> None:
        self.pcm = pcm
        self.fail = fail
        self.started = 0
        self.stopped = 0
        self.queue: Queue[AudioFrame | None] | None = None
        self.on_limit: Callable[[], None] | None = None

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_limit: Callable[[], None] | None = None,
    ) -> None:
        if self.fail:
            raise PipelineError("MICROPHONE_UNAVAILABLE", "Permission denied")
        self.started += 1
        self.queue = audio_queue
        self.on_limit = on_limit

    def stop(self) -> None:
        self.stopped += 1

    def take_recording(self) -> bytes:
        pcm, self.pcm = self.pcm, b""
        return pcm


class FakeRecognizer:
    def __init__(self, supported: bool = True, fail: bool = False) -> None:
        self.supported = supported
        self.fail = fail
        self.on_results = None
        self.on_error = None
        self.started = 0
        self.stopped = 0

    def is_supported(self) -> bool:
        return self.supported

    def start(self, audio_queue, on_results, on_error) -> None:  # noqa: ANN001
        if self.fail:
            raise RuntimeError("service unavailable")
        self.started += 1
        self.on_results = on_results
        self.on_error = on_error

    def stop(self) -> None:
        self.stopped += 1

    def emit(self, *results: RecognitionResult) -> None:
        assert self.on_results is not None
        self.on_results(list(results))

    def fail_with(self, reason: str) -> None:
        assert self.on_error is not None
        self.on_error(reason)


class FakePlayback:
    def __init__(self, payload: AudioPayload) -> None:
        self.payload = payload
        self.revoked = False

    def play(self) -> None:
        pass

    def revoke(self) -> None:
        self.revoked = True


def _wav(name: str = "clip.wav", size: int = 1024) -> AudioPayload:
    return AudioPayload(content=b"\x00" * size, mime_type="audio/wav", filename=name)


def _controller(
    recorder: FakeRecorder | None = None,
    recognizer: FakeRecognizer | None = None,
    view: ViewState | None = None,
    transitions: list | None = None,
) -> CaptureController:
    return CaptureController(
        recorder=recorder or FakeRecorder(),
        recognizer=recognizer or FakeRecognizer(),
        view=view or ViewState(),
        playback_factory=FakePlayback,
        on_state_change=(lambda f, t: transitions.append((f, t))) if transitions is not None else None,
    )


# ---------------------------------------------------------------
# Transcript reducer
# ---------------------------------------------------------------

def test_reducer_interim_then_final_then_interim() -> None:
    buffer = TranscriptBuffer()
    buffer = reduce_transcript(buffer, [RecognitionResult("hel")])
    assert buffer.displayed == "hel"
    buffer = reduce_transcript(buffer, [RecognitionResult("hello", is_final=True)])
    assert buffer.displayed == "hello "
    buffer = reduce_transcript(buffer, [RecognitionResult("world")])
    assert buffer.displayed == "hello world"


def test_reducer_replaces_interim_and_only_appends_final() -> None:
    buffer = reduce_transcript(TranscriptBuffer(), [RecognitionResult("one", is_final=True)])
    buffer = reduce_transcript(buffer, [RecognitionResult("tw")])
    buffer = reduce_transcript(buffer, [RecognitionResult("two thr")])

    assert buffer.interim == "two thr"
    assert buffer.finalized == "one "

    buffer = reduce_transcript(
        buffer,
        [RecognitionResult("two", is_final=True), RecognitionResult("three")],
    )
    assert buffer.finalized == "one two "
    assert buffer.interim == "three"


# ---------------------------------------------------------------
# File selection
# ---------------------------------------------------------------

def test_select_file_rejects_unsupported_type_and_keeps_state() -> None:
    controller = _controller()
    assert controller.select_file(_wav("first.wav")) is True
    first = controller.payload

    rejected = AudioPayload(content=b"x", mime_type="audio/ogg", filename="voice.ogg")
    assert controller.select_file(rejected) is False

    assert controller.payload is first
    assert controller.state == CaptureState.FILE_SELECTED
    assert controller.view.error == UNSUPPORTED_TYPE


def test_select_file_rejects_oversized_payload() -> None:
    controller = _controller()
    big = AudioPayload(content=b"\x00" * (MAX_PAYLOAD_BYTES + 1), mime_type="audio/mpeg", filename="big.mp3")

    assert controller.select_file(big) is False
    assert controller.view.error == FILE_TOO_LARGE
    assert controller.payload is None
    assert controller.state == CaptureState.IDLE


def test_select_file_revokes_previous_playback() -> None:
    transitions: list[tuple[CaptureState, CaptureState]] = []
    controller = _controller(transitions=transitions)

    controller.select_file(_wav("a.wav"))
    first_playback = controller.playback
    controller.select_file(_wav("b.wav"))

    assert first_playback.revoked is True
    assert controller.playback.payload.filename == "b.wav"
    assert controller.playback.revoked is False
    assert transitions == [(CaptureState.IDLE, CaptureState.FILE_SELECTED)]


def test_select_file_clears_previous_error() -> None:
    controller = _controller()
    controller.select_file(AudioPayload(content=b"x", mime_type="text/plain", filename="a.txt"))
    assert controller.view.error

    controller.select_file(_wav())
    assert controller.view.error == ""


def test_select_file_while_recording_stops_recording_first() -> None:
    recorder = FakeRecorder(pcm=b"\x01\x00" * 1600)
    recognizer = FakeRecognizer()
    controller = _controller(recorder=recorder, recognizer=recognizer)

    assert controller.start_recording() is True
    assert controller.select_file(_wav("picked.wav")) is True

    assert recognizer.stopped == 1
    assert recorder.stopped == 1
    assert controller.state == CaptureState.FILE_SELECTED
    assert controller.payload.filename == "picked.wav"
    assert controller.view.is_recording is False


# ---------------------------------------------------------------
# Recording
# ---------------------------------------------------------------

def test_start_recording_is_noop_when_unsupported() -> None:
    recorder = FakeRecorder()
    controller = _controller(recorder=recorder, recognizer=FakeRecognizer(supported=False))

    assert controller.live_capture_supported is False
    assert controller.start_recording() is False
    assert recorder.started == 0
    assert controller.state == CaptureState.IDLE


def test_microphone_denied_sets_error_and_stays() -> None:
    controller = _controller(recorder=FakeRecorder(fail=True))
    controller.select_file(_wav())

    assert controller.start_recording() is False
    assert controller.state == CaptureState.FILE_SELECTED
    assert controller.view.error == "Microphone access denied or not available."


def test_recognizer_start_failure_releases_microphone() -> None:
    recorder = FakeRecorder()
    controller = _controller(recorder=recorder, recognizer=FakeRecognizer(fail=True))

    assert controller.start_recording() is False
    assert recorder.started == 1
    assert recorder.stopped == 1
    assert controller.state == CaptureState.IDLE
    assert "service unavailable" in controller.view.error


def test_second_start_is_rejected_while_recording() -> None:
    recorder = FakeRecorder()
    controller = _controller(recorder=recorder)

    assert controller.start_recording() is True
    assert controller.start_recording() is False
    assert recorder.started == 1


def test_start_recording_resets_transcript() -> None:
    view = ViewState()
    view.update(transcript="old result", error="old error")
    controller = _controller(view=view)

    controller.start_recording()

    assert view.transcript == ""
    assert view.error == ""
    assert view.is_recording is True
    assert controller.transcript == TranscriptBuffer()


def test_live_transcript_follows_recognition_batches() -> None:
    recognizer = FakeRecognizer()
    controller = _controller(recognizer=recognizer)
    controller.start_recording()

    recognizer.emit(RecognitionResult("hel"))
    recognizer.emit(RecognitionResult("hello", is_final=True))
    recognizer.emit(RecognitionResult("world"))

    assert controller.view.transcript == "hello world"


def test_stop_recording_finalizes_wav_payload() -> None:
    transitions: list[tuple[CaptureState, CaptureState]] = []
    recorder = FakeRecorder(pcm=b"\x01\x00" * 1600)
    recognizer = FakeRecognizer()
    controller = _controller(recorder=recorder, recognizer=recognizer, transitions=transitions)

    controller.start_recording()
    controller.stop_recording()

    payload = controller.payload
    assert payload is not None
    assert payload.mime_type == "audio/wav"
    assert payload.filename.endswith(".wav")
    assert payload.content[:4] == b"RIFF"
    assert controller.state == CaptureState.FILE_SELECTED
    assert recognizer.stopped == 1
    assert recorder.stopped == 1
    assert (CaptureState.IDLE, CaptureState.RECORDING) in transitions
    assert (CaptureState.RECORDING, CaptureState.FILE_SELECTED) in transitions


def test_stop_recording_without_audio_returns_to_idle() -> None:
    controller = _controller(recorder=FakeRecorder(pcm=b""))
    controller.start_recording()
    controller.stop_recording()

    assert controller.payload is None
    assert controller.state == CaptureState.IDLE


def test_stop_recording_keeps_previous_file_when_nothing_captured() -> None:
    controller = _controller(recorder=FakeRecorder(pcm=b""))
    controller.select_file(_wav("kept.wav"))
    controller.start_recording()
    controller.stop_recording()

    assert controller.payload.filename == "kept.wav"
    assert controller.state == CaptureState.FILE_SELECTED


def test_stop_when_not_recording_is_noop() -> None:
    recognizer = FakeRecognizer()
    view = ViewState()
    view.update(transcript="keep me")
    controller = _controller(recognizer=recognizer, view=view)

    controller.stop_recording()
    controller.stop_recording()

    assert recognizer.stopped == 0
    assert view.transcript == "keep me"
    assert controller.state == CaptureState.IDLE


def test_recognition_error_releases_microphone() -> None:
    recorder = FakeRecorder(pcm=b"\x01\x00" * 160)
    recognizer = FakeRecognizer()
    controller = _controller(recorder=recorder, recognizer=recognizer)

    controller.start_recording()
    recognizer.fail_with("network")

    assert controller.state == CaptureState.IDLE
    assert controller.payload is None
    assert recorder.stopped == 1
    assert recognizer.stopped == 1
    assert controller.view.error == "Speech recognition error: network"
    assert controller.view.is_recording is False


def test_recognition_error_replaces_live_transcript() -> None:
    recognizer = FakeRecognizer()
    controller = _controller(recognizer=recognizer)

    controller.start_recording()
    recognizer.emit(RecognitionResult("hello", is_final=True))
    recognizer.fail_with("network")

    assert controller.view.error == "Speech recognition error: network"
    assert controller.view.transcript == ""


def test_microphone_denied_replaces_previous_transcript() -> None:
    view = ViewState()
    view.update(transcript="earlier result")
    controller = _controller(recorder=FakeRecorder(fail=True), view=view)

    controller.start_recording()

    assert view.error == "Microphone access denied or not available."
    assert view.transcript == ""


def test_capture_limit_finalizes_recording() -> None:
    recorder = FakeRecorder(pcm=b"\x01\x00" * 1600)
    controller = _controller(recorder=recorder)

    controller.start_recording()
    assert recorder.on_limit is not None
    recorder.on_limit()

    assert controller.state == CaptureState.FILE_SELECTED
    assert controller.payload is not None
    assert controller.payload.mime_type == "audio/wav"
    assert controller.view.is_recording is False
    assert recorder.stopped == 1


def test_capture_limit_from_previous_session_is_ignored() -> None:
    recorder = FakeRecorder()
    controller = _controller(recorder=recorder)

    controller.start_recording()
    old_limit = recorder.on_limit
    controller.stop_recording()
    controller.start_recording()
    old_limit()

    assert controller.state == CaptureState.RECORDING


def test_stale_callbacks_do_not_resurrect_session() -> None:
    recognizer = FakeRecognizer()
    controller = _controller(recognizer=recognizer)

    controller.start_recording()
    recognizer.emit(RecognitionResult("hello", is_final=True))
    stale_results, stale_error = recognizer.on_results, recognizer.on_error
    controller.stop_recording()

    stale_results([RecognitionResult("late")])
    stale_error("aborted")

    assert controller.view.transcript == "hello "
    assert controller.view.error == ""
    assert controller.state == CaptureState.IDLE


def test_callbacks_from_previous_session_are_ignored() -> None:
    recognizer = FakeRecognizer()
    controller = _controller(recorder=FakeRecorder(), recognizer=recognizer)

    controller.start_recording()
    old_results = recognizer.on_results
    controller.stop_recording()
    controller.start_recording()

    old_results([RecognitionResult("ghost", is_final=True)])
    recognizer.emit(RecognitionResult("fresh"))

    assert controller.view.transcript == "fresh"


# ---------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------

def test_dispose_releases_everything() -> None:
    recorder = FakeRecorder(pcm=b"\x01\x00" * 160)
    recognizer = FakeRecognizer()
    controller = _controller(recorder=recorder, recognizer=recognizer)
    controller.select_file(_wav())
    playback = controller.playback
    controller.start_recording()

    controller.dispose()

    assert recognizer.stopped >= 1
    assert recorder.stopped >= 1
    assert playback.revoked is True
    assert controller.payload is None
    assert controller.state == CaptureState.IDLE
    assert controller.start_recording() is False


def test_dispose_when_idle_does_not_raise() -> None:
    controller = _controller()
    controller.dispose()
    assert controller.state == CaptureState.IDLE
