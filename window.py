"""Main window: file picker, record toggle, transcript and error display."""

from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QCloseEvent, QDragEnterEvent, QDropEvent
from PySide6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from models import CaptureState, ViewSnapshot

FILE_FILTER = "Audio (*.mp3 *.wav *.m4a *.mp4)"

_ERROR_STYLE = "color: #C0392B; font-size: 14px;"
_STATUS_STYLE = "color: #555555; font-size: 13px;"


class TranscriberWindow(QWidget):
    file_chosen = Signal(str)
    record_toggled = Signal()
    play_requested = Signal()
    transcribe_requested = Signal()
    closing = Signal()

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Transcribe Audio")
        self.setMinimumWidth(560)
        self.setAcceptDrops(True)

        self._status = QLabel("Drop an audio file here or choose one")
        self._status.setStyleSheet(_STATUS_STYLE)
        self._error = QLabel("")
        self._error.setWordWrap(True)
        self._error.setStyleSheet(_ERROR_STYLE)
        self._transcript = QPlainTextEdit()
        self._transcript.setReadOnly(True)
        self._transcript.setPlaceholderText("Transcription will appear here")

        self._choose_button = QPushButton("Choose file")
        self._choose_button.clicked.connect(self._choose_file)
        self._record_button = QPushButton("Record")
        self._record_button.clicked.connect(self.record_toggled.emit)
        self._play_button = QPushButton("Play")
        self._play_button.clicked.connect(self.play_requested.emit)
        self._transcribe_button = QPushButton("Transcribe")
        self._transcribe_button.clicked.connect(self.transcribe_requested.emit)

        buttons = QHBoxLayout()
        for button in (
            self._choose_button,
            self._record_button,
            self._play_button,
            self._transcribe_button,
        ):
            buttons.addWidget(button)

        layout = QVBoxLayout()
        layout.addWidget(self._status)
        layout.addLayout(buttons)
        layout.addWidget(self._error)
        layout.addWidget(self._transcript)
        self.setLayout(layout)

    def render(
        self,
        view: ViewSnapshot,
        state: CaptureState,
        payload_name: str | None,
        live_capture_supported: bool,
    ) -> None:
        recording = state == CaptureState.RECORDING
        if recording:
            self._status.setText("Recording in progress")
        elif view.is_loading:
            self._status.setText("Transcribing...")
        elif payload_name:
            self._status.setText(f"Selected: {payload_name}")
        else:
            self._status.setText("Drop an audio file here or choose one")

        self._record_button.setText("Stop" if recording else "Record")
        self._record_button.setEnabled(live_capture_supported and not view.is_loading)
        if not live_capture_supported:
            self._record_button.setToolTip("Live transcription is not available")
        self._play_button.setEnabled(bool(payload_name) and not recording)
        self._transcribe_button.setEnabled(bool(payload_name) and not view.is_loading and not recording)
        self._choose_button.setEnabled(not view.is_loading)

        self._error.setText(view.error)
        self._error.setVisible(bool(view.error))
        if self._transcript.toPlainText() != view.transcript:
            self._transcript.setPlainText(view.transcript)

    def _choose_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Choose audio", "", FILE_FILTER)
        if path:
            self.file_chosen.emit(path)

    def dragEnterEvent(self, event: QDragEnterEvent) -> None:
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event: QDropEvent) -> None:
        urls = event.mimeData().urls()
        if urls and urls[0].isLocalFile():
            event.setDropAction(Qt.CopyAction)
            event.accept()
            self.file_chosen.emit(urls[0].toLocalFile())

    def closeEvent(self, event: QCloseEvent) -> None:
        self.closing.emit()
        super().closeEvent(event)
