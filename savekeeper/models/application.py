"""Application entry model — one discovered or manually added game."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from savekeeper.models.app_settings import AppSettingsOverride
from savekeeper.models.backup_record import BackupRecord

UNKNOWN_SAVE_PATH = "Unknown"


def make_app_id(executable_path: str | Path) -> str:
    """Normalize an executable path into the registry key for an application."""
    return os.path.normcase(os.path.normpath(str(executable_path)))


@dataclass
class ApplicationEntry:
    """
    State for one application, keyed by its executable path.

    Mutated by the scheduler (timestamps, history), the save-location
    resolver (save path, known-game id), the process monitor (running flag,
    last used) and user edits. Every writer must hold ``lock``.
    """

    name: str
    executable_path: str
    install_dir: str = ""
    save_path: str = UNKNOWN_SAVE_PATH
    is_running: bool = False
    last_used: datetime | None = None
    last_backup_time: datetime | None = None
    backup_history: list[BackupRecord] = field(default_factory=list)
    settings_override: AppSettingsOverride | None = None
    known_game_id: str = ""
    custom_save_path: bool = False
    lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not self.install_dir:
            self.install_dir = str(Path(self.executable_path).parent)

    @property
    def app_id(self) -> str:
        return make_app_id(self.executable_path)

    @property
    def executable_name(self) -> str:
        return Path(self.executable_path).name

    @property
    def has_valid_save_path(self) -> bool:
        if not self.save_path or self.save_path == UNKNOWN_SAVE_PATH:
            return False
        return Path(self.save_path).is_dir()

    # ── Serialization ──

    def to_dict(self) -> dict[str, Any]:
        with self.lock:
            return {
                "name": self.name,
                "executable_path": self.executable_path,
                "install_dir": self.install_dir,
                "save_path": self.save_path,
                "last_used": self.last_used.isoformat() if self.last_used else None,
                "last_backup_time": (
                    self.last_backup_time.isoformat() if self.last_backup_time else None
                ),
                "backup_history": [r.to_dict() for r in self.backup_history],
                "settings_override": (
                    self.settings_override.to_dict() if self.settings_override else None
                ),
                "known_game_id": self.known_game_id,
                "custom_save_path": self.custom_save_path,
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApplicationEntry:
        override = data.get("settings_override")
        history = [BackupRecord.from_dict(r) for r in data.get("backup_history", [])]
        history.sort(key=lambda r: r.created_at, reverse=True)
        return cls(
            name=data["name"],
            executable_path=data["executable_path"],
            install_dir=data.get("install_dir", ""),
            save_path=data.get("save_path") or UNKNOWN_SAVE_PATH,
            last_used=_parse_time(data.get("last_used")),
            last_backup_time=_parse_time(data.get("last_backup_time")),
            backup_history=history,
            settings_override=(
                AppSettingsOverride.from_dict(override) if isinstance(override, dict) else None
            ),
            known_game_id=data.get("known_game_id", ""),
            custom_save_path=bool(data.get("custom_save_path", False)),
        )


def _parse_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw)
    # Timestamps are compared against naive local time.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
