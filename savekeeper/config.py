"""Application configuration — global backup defaults and runtime tunables, stored as JSON."""

from __future__ import annotations

import copy
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from savekeeper.data.json_store import read_json, write_json_atomic


def _default_data_dir() -> Path:
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "SaveKeeper"
    return Path.home() / ".config" / "savekeeper"


class Config:
    """Global defaults and runtime tunables, persisted as ``config.json``."""

    _DEFAULTS: dict[str, Any] = {
        "backup_path": "",
        "known_games_path": "",
        # Auto-save
        "auto_save_interval": 15,
        "auto_save_enabled": True,
        "start_save_enabled": True,
        "max_auto_saves": 5,
        "max_start_saves": 3,
        "change_detection_enabled": True,
        # Runtime
        "tick_interval": 1.0,
        "process_check_interval": 2.0,
        "save_delay": 2.0,
        "max_backup_workers": 2,
        "scan_on_start": True,
    }

    def __init__(self, config_dir: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._dir = config_dir or _default_data_dir()
        self._path = self._dir / "config.json"
        self._lock = threading.Lock()
        self._defer_save = False
        self._load()

    def _load(self) -> None:
        """Read ``config.json`` over a fresh copy of the defaults."""
        self._data = copy.deepcopy(self._DEFAULTS)
        stored = read_json(self._path)
        if isinstance(stored, dict):
            self._deep_merge(self._data, stored)

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save(self) -> None:
        if self._defer_save:
            return
        with self._lock:
            write_json_atomic(self._path, self._data)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Context manager for batching multiple config changes into a single write."""
        self._defer_save = True
        try:
            yield
        finally:
            self._defer_save = False
            self._save()

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        node = self._data
        for part in key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    # ── Paths ──

    @property
    def data_dir(self) -> Path:
        return self._dir

    @property
    def backup_path(self) -> Path:
        raw = self._data.get("backup_path", "")
        return Path(raw) if raw else self._dir / "Backups"

    @backup_path.setter
    def backup_path(self, value: Path | None) -> None:
        self.set("backup_path", str(value) if value else "")

    @property
    def known_games_path(self) -> Path | None:
        raw = self._data.get("known_games_path", "")
        return Path(raw) if raw else None

    # ── Auto-save defaults ──

    @property
    def auto_save_interval(self) -> int:
        return max(1, int(self._data.get("auto_save_interval", 15)))

    @auto_save_interval.setter
    def auto_save_interval(self, value: int) -> None:
        self.set("auto_save_interval", max(1, int(value)))

    @property
    def auto_save_enabled(self) -> bool:
        return bool(self._data.get("auto_save_enabled", True))

    @auto_save_enabled.setter
    def auto_save_enabled(self, value: bool) -> None:
        self.set("auto_save_enabled", value)

    @property
    def start_save_enabled(self) -> bool:
        return bool(self._data.get("start_save_enabled", True))

    @start_save_enabled.setter
    def start_save_enabled(self, value: bool) -> None:
        self.set("start_save_enabled", value)

    @property
    def max_auto_saves(self) -> int:
        return int(self._data.get("max_auto_saves", 5))

    @max_auto_saves.setter
    def max_auto_saves(self, value: int) -> None:
        self.set("max_auto_saves", value)

    @property
    def max_start_saves(self) -> int:
        return int(self._data.get("max_start_saves", 3))

    @max_start_saves.setter
    def max_start_saves(self, value: int) -> None:
        self.set("max_start_saves", value)

    @property
    def change_detection_enabled(self) -> bool:
        return bool(self._data.get("change_detection_enabled", True))

    @change_detection_enabled.setter
    def change_detection_enabled(self, value: bool) -> None:
        self.set("change_detection_enabled", value)

    # ── Runtime ──

    @property
    def tick_interval(self) -> float:
        return float(self._data.get("tick_interval", 1.0))

    @property
    def process_check_interval(self) -> float:
        return float(self._data.get("process_check_interval", 2.0))

    @property
    def save_delay(self) -> float:
        return float(self._data.get("save_delay", 2.0))

    @property
    def max_backup_workers(self) -> int:
        return max(1, int(self._data.get("max_backup_workers", 2)))

    @property
    def scan_on_start(self) -> bool:
        return bool(self._data.get("scan_on_start", True))
