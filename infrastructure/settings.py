"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

# Values used when settings.json omits a key
DEFAULTS: dict[str, Any] = {
    "storage": {
        "data_dir": "~/.photo_journal",
        "max_dimension": 4096,
        "jpeg_quality": 80,
        "thumbnail_side": 300,
        "thumbnail_quality": 60,
        "write_thumbnails": True,
        "use_recycle_bin": False,
        "save_timeout_seconds": 20,
    },
    "cache": {
        "full_size_capacity": 50,
        "thumbnail_capacity": 100,
    },
    "compare": {
        "fit_mode": "clip",
        "render_scale": 2,
        "export_timeout_seconds": 30,
        "min_scale": 0.3,
        "max_scale": 5.0,
        "export_dir": "~/Pictures/PhotoJournal",
    },
    "logging": {
        "dir": None,
        "level": "INFO",
    },
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


class JsonSettings:
    """JSON settings reader with dotted-key access layered over `DEFAULTS`."""

    def __init__(self, settings_path: str | Path | None = None, *, required: bool = True) -> None:
        data: dict[str, Any] = {}
        self._path = Path(settings_path) if settings_path is not None else None
        if self._path is not None:
            if self._path.exists():
                with self._path.open("r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ValueError(f"settings root must be an object: {self._path}")
                data = loaded
            elif required:
                raise FileNotFoundError(f"settings.json not found: {self._path}")
        self._data = _merge(DEFAULTS, data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonSettings:
        """Build settings from an in-memory mapping (tests, embedding)."""
        inst = cls(None)
        inst._data = _merge(DEFAULTS, data)
        return inst

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
