"""Adapters over the remote transcription capability.

Both backends take a readable stream over a staged file and upload it as
the request body. Groq goes through its SDK, Deepgram through its REST
endpoint with httpx. Credentials come from the environment and are
read each time a backend is built.
"""

from __future__ import annotations

import logging
import os
from typing import Any, BinaryIO

import groq
import httpx
from groq import Groq

from config import GatewaySettings
from errors import AUTH_FAILED, NETWORK_ERROR, UPSTREAM_FAILED, PipelineError
from interfaces import TranscriptionBackend
from models import TranscriptionResult, guess_mime_type

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"


class GroqTranscriptionBackend:
    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-large-v3",
        language: str = "en",
        response_format: str = "json",
        temperature: float = 0.0,
    ) -> None:
        if not api_key:
            raise PipelineError(AUTH_FAILED, "GROQ_API_KEY is not set")
        self._client = Groq(api_key=api_key)
        self._model = model
        self._language = language
        self._response_format = response_format
        self._temperature = temperature

    def transcribe(self, stream: BinaryIO, filename: str) -> TranscriptionResult:
        logger.info("transcribing %s with %s", filename, self._model)
        try:
            response = self._client.audio.transcriptions.create(
                file=(filename, stream),
                model=self._model,
                response_format=self._response_format,
                language=self._language,
                temperature=self._temperature,
            )
        except groq.APIConnectionError as exc:
            raise PipelineError(NETWORK_ERROR, str(exc)) from exc
        except groq.APIStatusError as exc:
            raise PipelineError(UPSTREAM_FAILED, exc.message) from exc
        return _to_result(response)


class DeepgramTranscriptionBackend:
    name = "deepgram"

    def __init__(
        self,
        api_key: str,
        model: str = "nova-2",
        language: str = "en",
        url: str = DEEPGRAM_LISTEN_URL,
        client: httpx.Client | None = None,
        timeout_s: float = 120.0,
    ) -> None:
        if not api_key:
            raise PipelineError(AUTH_FAILED, "DEEPGRAM_API_KEY is not set")
        self._api_key = api_key
        self._model = model
        self._language = language
        self._url = url
        self._client = client or httpx.Client(timeout=timeout_s)

    def transcribe(self, stream: BinaryIO, filename: str) -> TranscriptionResult:
        logger.info("transcribing %s with %s", filename, self._model)
        try:
            response = self._client.post(
                self._url,
                params={"model": self._model, "language": self._language, "punctuate": "true"},
                headers={
                    "Authorization": f"Token {self._api_key}",
                    "Content-Type": guess_mime_type(filename),
                },
                content=stream,
            )
        except httpx.TransportError as exc:
            raise PipelineError(NETWORK_ERROR, str(exc) or type(exc).__name__) from exc

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code in (401, 403):
                raise PipelineError(AUTH_FAILED, message)
            raise PipelineError(UPSTREAM_FAILED, message)

        try:
            data = response.json()
        except ValueError as exc:
            raise PipelineError(UPSTREAM_FAILED, "Deepgram returned an invalid response") from exc

        metadata: dict[str, Any] = {"model": self._model}
        info = data.get("metadata") or {}
        if info.get("request_id"):
            metadata["request_id"] = info["request_id"]
        if info.get("duration") is not None:
            metadata["duration"] = info["duration"]
        return TranscriptionResult(text=self._extract_text(data), metadata=metadata)

    def _extract_text(self, data: dict[str, Any]) -> str:
        channels = (data.get("results") or {}).get("channels") or []
        if not channels:
            return ""
        alternatives = channels[0].get("alternatives") or []
        if not alternatives:
            return ""
        return str(alternatives[0].get("transcript") or "")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        message = body.get("err_msg") or body.get("message")
        if message:
            return str(message)
    return f"Deepgram returned status {response.status_code}"


def _to_result(response: Any) -> TranscriptionResult:
    if hasattr(response, "model_dump"):
        data = response.model_dump(exclude_none=True)
    elif isinstance(response, dict):
        data = dict(response)
    else:
        data = {"text": str(response)}
    text = str(data.pop("text", "") or "")
    return TranscriptionResult(text=text, metadata=data)


def create_backend(settings: GatewaySettings) -> TranscriptionBackend:
    """Build the configured backend, reading its credential from the environment."""
    if settings.provider == "groq":
        return GroqTranscriptionBackend(
            api_key=os.getenv("GROQ_API_KEY", ""),
            model=settings.model,
            language=settings.language,
            response_format=settings.response_format,
            temperature=settings.temperature,
        )
    if settings.provider == "deepgram":
        return DeepgramTranscriptionBackend(
            api_key=os.getenv("DEEPGRAM_API_KEY", ""),
            model=settings.model,
            language=settings.language,
        )
    raise PipelineError(UPSTREAM_FAILED, f"Unknown transcription provider: {settings.provider}")
