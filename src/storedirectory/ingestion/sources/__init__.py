"""Source adapters: one per external origin of store records."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from storedirectory.errors import ConfigurationError


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read a JSON file containing an array of records.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not JSON, or
            not an array of objects.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"cannot read records from {path}: {exc}"
        raise ConfigurationError(msg) from exc

    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        msg = f"{path} must contain a JSON array of objects"
        raise ConfigurationError(msg)
    return data
