"""Filesystem and data-directory helpers."""

from __future__ import annotations

import os
from pathlib import Path

PRIMARY_DATA_DIR = ".inbox-agent"
DATA_DIR_ENV = "INBOX_AGENT_DATA_DIR"


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """
    Resolve the active data directory.

    `INBOX_AGENT_DATA_DIR` overrides the default `~/.inbox-agent`; relative
    overrides are resolved against the home directory.
    """
    override = os.environ.get(DATA_DIR_ENV, "").strip()
    if override:
        candidate = Path(override).expanduser()
        if not candidate.is_absolute():
            candidate = Path.home() / candidate
        return ensure_dir(candidate)
    return ensure_dir(Path.home() / PRIMARY_DATA_DIR)
