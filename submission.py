"""Send the selected payload to the gateway and reconcile the view."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from errors import TRANSCRIBE_FAILED
from models import AudioPayload, ViewState

logger = logging.getLogger(__name__)


class SubmissionOrchestrator:
    """Posts payloads to ``POST /transcribe``.

    The view's loading flag is set for the duration of a submission and is
    always cleared afterwards, whatever the outcome.
    """

    def __init__(
        self,
        view: ViewState,
        base_url: str = "http://127.0.0.1:8000",
        client: Optional[httpx.Client] = None,
        timeout_s: float = 120.0,
    ) -> None:
        self._view = view
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout_s)

    def submit(self, payload: Optional[AudioPayload]) -> None:
        if payload is None:
            return

        self._view.update(is_loading=True, error="", transcript="")
        try:
            response = self._client.post(
                "/transcribe",
                files={"file": (payload.filename, payload.content, payload.mime_type)},
            )
            data = self._parse_body(response)
            if not response.is_success:
                raise _SubmissionFailed(_error_message(data) or TRANSCRIBE_FAILED)
            self._view.update(transcript=str(data.get("text", "")))
        except _SubmissionFailed as exc:
            logger.warning("transcription rejected: %s", exc)
            self._view.update(error=str(exc))
        except httpx.HTTPError as exc:
            logger.error("transcription request failed: %s", exc)
            self._view.update(error=str(exc) or TRANSCRIBE_FAILED)
        finally:
            self._view.update(is_loading=False)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise _SubmissionFailed(TRANSCRIBE_FAILED) from exc
        if not isinstance(data, dict):
            raise _SubmissionFailed(TRANSCRIBE_FAILED)
        return data


class _SubmissionFailed(Exception):
    pass


def _error_message(data: dict[str, Any]) -> str:
    error = data.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return ""
