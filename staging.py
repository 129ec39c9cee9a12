"""Request-scoped staging of uploaded audio on the local filesystem."""

from __future__ import annotations

import logging
import os
import secrets
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from errors import CLEANUP_FAILED, ERROR_MESSAGES, STAGING_FAILED, PipelineError
from models import StagedFile

logger = logging.getLogger(__name__)


class StagingStore:
    def __init__(self, directory: Path | None = None, prefix: str = "upload") -> None:
        self._directory = Path(directory or tempfile.gettempdir())
        self._prefix = prefix
        self._lock = threading.Lock()
        self._last_ms = 0

    @property
    def directory(self) -> Path:
        return self._directory

    def stage(self, data: bytes, filename: str = "") -> StagedFile:
        """Write ``data`` under a fresh unique name and return its handle.

        The bytes land in a hidden ``.part`` sibling first and are renamed
        into place, so the final path never holds a partial file.
        """
        target = self._directory / self._unique_name(filename)
        partial = target.with_name(f".{target.name}.part")
        try:
            with open(partial, "xb") as fh:
                fh.write(data)
            os.replace(partial, target)
        except OSError as exc:
            self._discard(partial)
            raise PipelineError(STAGING_FAILED, str(exc)) from exc
        logger.debug("staged %d bytes at %s", len(data), target)
        return StagedFile(path=target.resolve(), size=len(data))

    def release(self, handle: StagedFile) -> None:
        """Delete a staged file. Failures are logged, never raised."""
        try:
            os.unlink(handle.path)
        except FileNotFoundError:
            logger.debug("staged file already gone: %s", handle.path)
        except OSError as exc:
            logger.warning(
                "%s %s: %s",
                ERROR_MESSAGES[CLEANUP_FAILED],
                handle.path,
                exc,
                extra={"error_code": CLEANUP_FAILED},
            )

    @contextmanager
    def staged(self, data: bytes, filename: str = "") -> Iterator[StagedFile]:
        handle = self.stage(data, filename)
        try:
            yield handle
        finally:
            self.release(handle)

    def _unique_name(self, filename: str) -> str:
        with self._lock:
            now_ms = max(int(time.time() * 1000), self._last_ms + 1)
            self._last_ms = now_ms
        token = secrets.token_hex(4)
        return f"{self._prefix}-{now_ms}-{token}{Path(filename).suffix}"

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Error removing partial file %s: %s", path, exc)
