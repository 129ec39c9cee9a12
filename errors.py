"""Shared error codes, user-facing messages and the pipeline exception."""

from __future__ import annotations

VALIDATION_ERROR = "VALIDATION_ERROR"
MICROPHONE_UNAVAILABLE = "MICROPHONE_UNAVAILABLE"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
PLAYBACK_UNSUPPORTED = "PLAYBACK_UNSUPPORTED"
STAGING_FAILED = "STAGING_FAILED"
UPSTREAM_FAILED = "UPSTREAM_FAILED"
AUTH_FAILED = "AUTH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
CLEANUP_FAILED = "CLEANUP_FAILED"

NO_FILE_PROVIDED = "No file provided"
UNSUPPORTED_TYPE = "Please upload an MP3, WAV, or M4A file"
FILE_TOO_LARGE = "File size must be less than 25MB"
TRANSCRIBE_FAILED = "Failed to transcribe audio"

ERROR_MESSAGES = {
    VALIDATION_ERROR: UNSUPPORTED_TYPE,
    MICROPHONE_UNAVAILABLE: "Microphone access denied or not available.",
    RECOGNITION_ERROR: "Speech recognition failed.",
    PLAYBACK_UNSUPPORTED: "Preview is only available for WAV audio.",
    STAGING_FAILED: "Could not stage the uploaded audio.",
    UPSTREAM_FAILED: TRANSCRIBE_FAILED,
    AUTH_FAILED: "API key is invalid or missing.",
    NETWORK_ERROR: "Network failed, please retry.",
    CLEANUP_FAILED: "Could not remove the staged audio file.",
}

_STATUS_BY_CODE = {
    VALIDATION_ERROR: 400,
}


class PipelineError(Exception):
    """A tagged failure crossing a pipeline boundary.

    ``message`` is what the caller gets to see; when none is given the
    default text for ``code`` is used.
    """

    def __init__(self, code: str, message: str = "", status_code: int | None = None) -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, TRANSCRIBE_FAILED)
        self.status_code = status_code or _STATUS_BY_CODE.get(code, 500)
        super().__init__(self.message)
