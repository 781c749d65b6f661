"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from interfaces import ConfigStore

logger = logging.getLogger(__name__)

CLIENT_ID_ENV = "DISCORD_CLIENT_ID"
PLACEHOLDER_CLIENT_IDS = {"", "your_discord_application_id_here"}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "nowplaying_presence" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_client_id(self) -> str:
        data = self._read_all()
        return str(data.get("client_id", ""))

    def set_client_id(self, client_id: str) -> None:
        data = self._read_all()
        data["client_id"] = client_id.strip()
        self._write_all(data)

    def get_presence_enabled(self) -> bool:
        data = self._read_all()
        return bool(data.get("presence_enabled", True))

    def set_presence_enabled(self, enabled: bool) -> None:
        data = self._read_all()
        data["presence_enabled"] = bool(enabled)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def resolve_client_id(store: ConfigStore) -> str:
    """Client ID from ``DISCORD_CLIENT_ID`` if set, else from the config store.

    Returns an empty string when neither is set; the presence service then
    stays disconnected.
    """
    env = os.getenv(CLIENT_ID_ENV, "").strip()
    if env:
        return env
    value = store.get_client_id().strip()
    if value not in PLACEHOLDER_CLIENT_IDS:
        return value
    logger.warning("No Discord client ID configured; Discord presence is disabled")
    return ""
