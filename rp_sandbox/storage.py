"""JSON file storage.

All state is stored as JSON blobs under a configurable base directory, one
file per key. There is no database or ORM — reads and writes go through
plain helper methods that load and dump JSON.

Directory layout:

    {base}/
      world.json          ← {"characters": [...], "locations": [...]}
      messages.json       ← {location_id: [ChatMessage, ...]}
      token_usage.json    ← {location_id: cumulative input tokens}
      settings.json       ← Settings (defaults merged on read)

Loading placeholders are transient and are never written to disk.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rp_sandbox.models import ChatMessage, Settings
from rp_sandbox.world import World


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        return self._base / f"{key}.json"

    def _read_json(self, key: str, default: Any) -> Any:
        path = self._path(key)
        if not path.is_file():
            return default
        return json.loads(path.read_text())

    def _write_json(self, key: str, data: Any) -> None:
        self._path(key).write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # World
    # ------------------------------------------------------------------

    def get_world(self) -> World:
        return World.model_validate(self._read_json("world", {}))

    def save_world(self, world: World) -> None:
        self._write_json("world", world.model_dump(by_alias=True))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def get_messages(self) -> dict[str, list[ChatMessage]]:
        raw = self._read_json("messages", {})
        return {
            location_id: [ChatMessage.model_validate(m) for m in msgs]
            for location_id, msgs in raw.items()
        }

    def save_messages(self, messages: dict[str, list[ChatMessage]]) -> None:
        self._write_json("messages", {
            location_id: [
                m.model_dump(by_alias=True, exclude_none=True)
                for m in msgs if m.type != "loading"
            ]
            for location_id, msgs in messages.items()
        })

    # ------------------------------------------------------------------
    # Token counters
    # ------------------------------------------------------------------

    def get_token_usage(self) -> dict[str, int]:
        return {k: int(v) for k, v in self._read_json("token_usage", {}).items()}

    def save_token_usage(self, usage: dict[str, int]) -> None:
        self._write_json("token_usage", usage)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> Settings:
        """Read settings, returning defaults merged with stored values."""
        return Settings.model_validate(self._read_json("settings", {}))

    def save_settings(self, settings: Settings) -> None:
        self._write_json("settings", settings.model_dump(by_alias=True))

