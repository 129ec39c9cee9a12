"""Desktop client entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from audio_context import close_audio_context
from capture_controller import CaptureController
from config import JsonConfigStore
from errors import PipelineError
from models import AudioPayload, CaptureState, ViewSnapshot, ViewState
from recognizer import DeepgramLiveRecognizer
from recorder import SoundDeviceRecorder
from submission import SubmissionOrchestrator

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

from window import TranscriberWindow

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    view_signal = Signal(object)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.ui = UIBridge()
        self.ui.view_signal.connect(self._on_view_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        self.view = ViewState(on_change=self._on_view_change)
        self.controller = CaptureController(
            recorder=SoundDeviceRecorder(),
            recognizer=DeepgramLiveRecognizer(
                api_key=self.config_store.get_api_key(),
                language=self.config_store.get_language(),
            ),
            view=self.view,
            on_state_change=self._on_state_change,
        )
        self.submitter = SubmissionOrchestrator(
            view=self.view,
            base_url=self.config_store.get_gateway_url(),
        )

        self.window = TranscriberWindow()
        self.window.file_chosen.connect(self._on_file_chosen)
        self.window.record_toggled.connect(self._on_record_toggled)
        self.window.play_requested.connect(self._on_play_requested)
        self.window.transcribe_requested.connect(self._on_transcribe_requested)
        self.window.closing.connect(self.shutdown)
        self._render(self.view.snapshot())

    # ------------------------------------------------------------------
    # Callbacks (may run on worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_view_change(self, snapshot: ViewSnapshot) -> None:
        self.ui.view_signal.emit(snapshot)

    def _on_state_change(self, from_state: CaptureState, to_state: CaptureState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    # ------------------------------------------------------------------
    # UI thread handlers
    # ------------------------------------------------------------------

    def _on_view_ui(self, snapshot: ViewSnapshot) -> None:
        self._render(snapshot)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        logger.debug("capture state %s -> %s", from_state, to_state)
        self._render(self.view.snapshot())

    def _render(self, snapshot: ViewSnapshot) -> None:
        payload = self.controller.payload
        self.window.render(
            snapshot,
            self.controller.state,
            payload.filename if payload else None,
            self.controller.live_capture_supported,
        )

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def _on_file_chosen(self, path: str) -> None:
        try:
            payload = AudioPayload.from_path(Path(path))
        except OSError as exc:
            self.view.update(error=f"Could not read {Path(path).name}: {exc}")
            return
        self.controller.select_file(payload)

    def _on_record_toggled(self) -> None:
        if self.controller.state == CaptureState.RECORDING:
            self.controller.stop_recording()
        else:
            self.controller.start_recording()

    def _on_play_requested(self) -> None:
        playback = self.controller.playback
        if playback is None:
            return
        threading.Thread(target=self._play, args=(playback,), daemon=True).start()

    def _play(self, playback) -> None:  # noqa: ANN001
        try:
            playback.play()
        except PipelineError as exc:
            self.view.update(error=exc.message)

    def _on_transcribe_requested(self) -> None:
        if self.view.is_loading:
            return
        # The HTTP call blocks, so keep it off the Qt main thread.
        threading.Thread(
            target=self.submitter.submit,
            args=(self.controller.payload,),
            daemon=True,
        ).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        return self.app.exec()

    def shutdown(self) -> None:
        self.controller.dispose()
        self.submitter.close()
        close_audio_context()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
