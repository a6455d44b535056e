"""Durable namespaced key-value store backed by a JSON document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from inbox_agent.utils.helpers import ensure_dir

_MISSING = object()


class KeyValueStore:
    """
    Flat key-value store persisted to `<root>/store.json`, with text blobs in
    `<root>/files/`.

    Keys are dotted namespaces such as `MODULE.whatsapp.settings.accessToken`.
    Values are any JSON-serializable object. Every write replaces the document
    atomically through a temporary file.
    """

    def __init__(self, root: Path):
        self.root = ensure_dir(root)
        self.path = self.root / "store.json"
        self.files_dir = ensure_dir(self.root / "files")
        self._data: dict[str, Any] = self._safe_read()

    def _safe_read(self) -> dict[str, Any]:
        try:
            if not self.path.exists():
                return {}
            raw = self.path.read_text(encoding="utf-8")
            parsed = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read key-value store {self.path}: {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _safe_write(self) -> bool:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(self._data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
            return True
        except OSError as e:
            logger.error(f"Failed to write key-value store {self.path}: {e}")
            return False

    def reload(self) -> None:
        """Re-read the document from disk, dropping in-memory state."""
        self._data = self._safe_read()

    def has(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, _MISSING)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._safe_write()

    def set_many(self, values: dict[str, Any]) -> None:
        """Write several keys with a single flush."""
        if not values:
            return
        self._data.update(values)
        self._safe_write()

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        self._safe_write()
        return True

    def get_matching(self, prefix: str = "", suffix: str = "") -> dict[str, Any]:
        """Return every key/value whose key starts with prefix and ends with suffix."""
        return {
            key: value
            for key, value in self._data.items()
            if key.startswith(prefix) and key.endswith(suffix)
        }

    def _file_path(self, name: str) -> Path:
        safe = Path(name).name
        if not safe or safe != name:
            raise ValueError(f"Invalid store file name: {name!r}")
        return self.files_dir / safe

    def load_file(self, name: str) -> str | None:
        """Read a text blob, or None when it does not exist."""
        path = self._file_path(name)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read store file {name}: {e}")
            return None

    def save_file(self, name: str, content: str) -> bool:
        """Write a text blob, replacing any previous content."""
        path = self._file_path(name)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            tmp_path.replace(path)
            return True
        except OSError as e:
            logger.error(f"Failed to write store file {name}: {e}")
            return False
