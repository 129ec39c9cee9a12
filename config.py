"""Client config store and gateway settings."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

DEFAULT_GATEWAY_URL = "http://127.0.0.1:8000"

DEFAULT_MODELS = {
    "groq": "whisper-large-v3",
    "deepgram": "nova-2",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "audioscribe" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_gateway_url(self) -> str:
        data = self._read_all()
        return str(data.get("gateway_url", DEFAULT_GATEWAY_URL))

    def set_gateway_url(self, url: str) -> None:
        data = self._read_all()
        data["gateway_url"] = url
        self._write_all(data)

    def get_language(self) -> str:
        data = self._read_all()
        return str(data.get("language", "en"))

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class GatewaySettings:
    """Server-side invocation parameters.

    Credentials are not held here; backends read them from the
    environment on every call.
    """

    provider: str = "groq"
    model: str = DEFAULT_MODELS["groq"]
    language: str = "en"
    response_format: str = "json"
    temperature: float = 0.0
    staging_dir: Path = Path(tempfile.gettempdir())

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        provider = os.getenv("TRANSCRIPTION_PROVIDER", "groq").strip().lower() or "groq"
        model = os.getenv("TRANSCRIPTION_MODEL", "").strip() or DEFAULT_MODELS.get(provider, "")
        staging_dir = os.getenv("AUDIOSCRIBE_STAGING_DIR", "").strip() or tempfile.gettempdir()
        return cls(
            provider=provider,
            model=model,
            language=os.getenv("TRANSCRIPTION_LANGUAGE", "en").strip() or "en",
            staging_dir=Path(staging_dir),
        )
