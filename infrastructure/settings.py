"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path | None) -> None:
        self._path = Path(settings_path) if settings_path is not None else None
        self._data: dict[str, Any] = {}
        if self._path is None:
            return
        if not self._path.exists():
            raise FileNotFoundError(f"settings file not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"settings root must be an object: {self._path}")
        self._data = data

    @classmethod
    def empty(cls) -> JsonSettings:
        """Settings with no values; every lookup returns its default."""
        return cls(None)

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Return `key` as bool; accepts JSON booleans, 0/1 and "true"/"false"."""
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
