"""Transcription gateway: stage an upload, transcribe it, clean up."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException

from config import GatewaySettings
from errors import NO_FILE_PROVIDED, TRANSCRIBE_FAILED, PipelineError
from interfaces import TranscriptionBackend
from staging import StagingStore
from transcriber import create_backend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], TranscriptionBackend]


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: Dict[str, Any]


@dataclass
class Upload:
    filename: str
    content_type: str
    read: Callable[[], bytes]


def error_body(message: str) -> Dict[str, Any]:
    return {"error": {"message": message}}


class TranscriptionGateway:
    """Stateless request handler shared by all concurrent requests.

    Each call stages its own file, so concurrent calls never share storage.
    The staged file is released on every exit path.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        staging: Optional[StagingStore] = None,
        backend_factory: Optional[BackendFactory] = None,
    ) -> None:
        self.settings = settings or GatewaySettings.from_env()
        self._staging = staging or StagingStore(self.settings.staging_dir)
        self._backend_factory = backend_factory or (lambda: create_backend(self.settings))

    def transcribe(self, upload: Optional[Upload]) -> GatewayResponse:
        if upload is None:
            return GatewayResponse(400, error_body(NO_FILE_PROVIDED))

        try:
            data = upload.read()
            with self._staging.staged(data, upload.filename) as staged:
                backend = self._backend_factory()
                with open(staged.path, "rb") as stream:
                    result = backend.transcribe(stream, upload.filename or staged.path.name)
        except PipelineError as exc:
            logger.exception("Transcription error (%s)", exc.code)
            return GatewayResponse(exc.status_code, error_body(exc.message or TRANSCRIBE_FAILED))
        except Exception as exc:
            logger.exception("Transcription error")
            return GatewayResponse(500, error_body(str(exc) or TRANSCRIBE_FAILED))

        return GatewayResponse(200, result.to_dict())


def create_app(gateway: Optional[TranscriptionGateway] = None) -> FastAPI:
    app = FastAPI(title="audioscribe")
    app.state.gateway = gateway or TranscriptionGateway()

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "provider": app.state.gateway.settings.provider}

    @app.post("/transcribe")
    async def transcribe(request: Request) -> JSONResponse:
        # Malformed uploads get the same 400 body as a missing file.
        try:
            form = await request.form()
        except HTTPException as exc:
            logger.warning("unreadable form body: %s", exc.detail)
            form = FormData()
        try:
            upload = upload_from_field(form.get("file"))
            response = await run_in_threadpool(app.state.gateway.transcribe, upload)
        finally:
            await form.close()
        return JSONResponse(response.body, status_code=response.status_code)

    return app


def upload_from_field(field: Any) -> Optional[Upload]:
    """Map the ``file`` form field to an :class:`Upload`.

    Plain text values and file parts without a filename count as no file.
    """
    if not isinstance(field, UploadFile) or not field.filename:
        return None
    return Upload(
        filename=field.filename,
        content_type=field.content_type or "",
        read=field.file.read,
    )


def serve() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("AUDIOSCRIBE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("AUDIOSCRIBE_HOST", "127.0.0.1"),
        port=int(os.getenv("AUDIOSCRIBE_PORT", "8000")),
    )


if __name__ == "__main__":
    serve()
