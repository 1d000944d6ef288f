"""Application registry — JSON-backed store of application entries and their history."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Protocol

from loguru import logger

from savekeeper.data.json_store import CoalescingWriter, read_json
from savekeeper.models.app_settings import AppSettingsOverride
from savekeeper.models.application import ApplicationEntry, make_app_id

if TYPE_CHECKING:
    from savekeeper.core.backup import BackupManager


class ApplicationStore(Protocol):
    """Persistence interface consumed by the scheduler and discovery."""

    def persist(self, entry: ApplicationEntry) -> None: ...

    def load(self) -> list[ApplicationEntry]: ...


class ApplicationRegistry:
    """
    Owns every ApplicationEntry plus the hidden set and known executable paths.

    File layout (``applications.json``)::

        {
            "version": 1,
            "applications": {"<app_id>": { ... ApplicationEntry ... }},
            "hidden": ["<app_id>", ...],
            "known_paths": ["<app_id>", ...]
        }

    Writes are coalesced; ``save(force=True)`` writes synchronously.
    """

    def __init__(self, data_dir: Path, save_delay: float = 2.0) -> None:
        self._path = data_dir / "applications.json"
        self._entries: dict[str, ApplicationEntry] = {}
        self._hidden: set[str] = set()
        self._known_paths: set[str] = set()
        self._version = 1
        self._lock = threading.RLock()
        self._writer = CoalescingWriter(self._path, self._serialize, save_delay)

    # ── Persistence ──

    def load(self) -> list[ApplicationEntry]:
        """Load entries from disk, replacing in-memory state."""
        with self._lock:
            self._entries.clear()
            self._hidden.clear()
            self._known_paths.clear()
            data = read_json(self._path)
            if not isinstance(data, dict):
                return []
            self._version = data.get("version", 1)
            applications = data.get("applications", {})
            if not isinstance(applications, dict):
                logger.warning("Application store has unexpected format, starting empty")
                applications = {}
            for key, raw in applications.items():
                try:
                    entry = ApplicationEntry.from_dict(raw)
                except (TypeError, KeyError, ValueError, AttributeError) as e:
                    logger.warning(f"Skipping malformed application entry '{key}': {e}")
                    continue
                self._entries[entry.app_id] = entry
            self._hidden.update(_string_list(data, "hidden"))
            self._known_paths.update(_string_list(data, "known_paths"))
            logger.info(f"Loaded {len(self._entries)} application(s)")
            return list(self._entries.values())

    def _serialize(self) -> dict:
        with self._lock:
            entries = list(self._entries.items())
            hidden = sorted(self._hidden)
            known = sorted(self._known_paths)
        return {
            "version": self._version,
            "applications": {key: entry.to_dict() for key, entry in entries},
            "hidden": hidden,
            "known_paths": known,
        }

    def persist(self, entry: ApplicationEntry) -> None:
        """Record that ``entry`` changed; the write is coalesced."""
        with self._lock:
            if entry.app_id not in self._entries:
                return
        self._writer.schedule()

    def save(self, force: bool = False) -> None:
        if force:
            self._writer.flush()
        else:
            self._writer.schedule()

    # ── Entries ──

    def add(self, entry: ApplicationEntry) -> bool:
        """Add an entry. Returns False if the executable is already registered."""
        with self._lock:
            if entry.app_id in self._entries:
                return False
            self._entries[entry.app_id] = entry
            self._known_paths.add(entry.app_id)
        self._writer.schedule()
        return True

    def get(self, executable_path: str) -> ApplicationEntry | None:
        with self._lock:
            return self._entries.get(make_app_id(executable_path))

    def __contains__(self, executable_path: object) -> bool:
        if not isinstance(executable_path, str):
            return False
        with self._lock:
            return make_app_id(executable_path) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def all_entries(self) -> list[ApplicationEntry]:
        with self._lock:
            return list(self._entries.values())

    def visible_entries(self) -> list[ApplicationEntry]:
        with self._lock:
            return [e for key, e in self._entries.items() if key not in self._hidden]

    def remove(self, executable_path: str) -> ApplicationEntry | None:
        """Explicit user removal. Backups on disk are left untouched."""
        app_id = make_app_id(executable_path)
        with self._lock:
            entry = self._entries.pop(app_id, None)
            self._hidden.discard(app_id)
            self._known_paths.discard(app_id)
        if entry is not None:
            logger.info(f"Removed application: {entry.name}")
            self._writer.schedule()
        return entry

    def clear(self) -> None:
        """Full reset — forget every application."""
        with self._lock:
            self._entries.clear()
            self._hidden.clear()
            self._known_paths.clear()
        self._writer.schedule()

    # ── Known executables ──

    def is_known(self, executable_path: str) -> bool:
        app_id = make_app_id(executable_path)
        with self._lock:
            return app_id in self._known_paths or app_id in self._entries

    def mark_known(self, paths: Iterable[str]) -> None:
        with self._lock:
            self._known_paths.update(make_app_id(p) for p in paths)
        self._writer.schedule()

    @property
    def known_paths(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._known_paths)

    # ── Hidden set ──

    def hide(self, executable_path: str) -> None:
        with self._lock:
            self._hidden.add(make_app_id(executable_path))
        self._writer.schedule()

    def unhide(self, executable_path: str) -> None:
        with self._lock:
            self._hidden.discard(make_app_id(executable_path))
        self._writer.schedule()

    def is_hidden(self, executable_path: str) -> bool:
        with self._lock:
            return make_app_id(executable_path) in self._hidden

    @property
    def hidden(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._hidden)

    # ── User edits ──

    def rename(
        self, executable_path: str, new_name: str, backup_manager: BackupManager
    ) -> bool:
        """Rename an application and move its backup folders to the new name."""
        entry = self.get(executable_path)
        new_name = new_name.strip()
        if entry is None or not new_name:
            return False
        with entry.lock:
            old_name = entry.name
            if old_name == new_name:
                return False
            backup_manager.migrate_backups(entry, old_name, new_name)
            entry.name = new_name
        logger.info(f"Renamed '{old_name}' to '{new_name}'")
        self.persist(entry)
        return True

    def set_save_path(self, executable_path: str, save_path: str) -> bool:
        """User-chosen save path; never overwritten by automatic detection."""
        entry = self.get(executable_path)
        save_path = save_path.strip()
        if entry is None or not save_path:
            return False
        with entry.lock:
            entry.save_path = save_path
            entry.custom_save_path = True
        self.persist(entry)
        return True

    def set_override(
        self, executable_path: str, override: AppSettingsOverride | None
    ) -> bool:
        entry = self.get(executable_path)
        if entry is None:
            return False
        with entry.lock:
            entry.settings_override = override
        self.persist(entry)
        return True


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list):
        logger.warning(f"Ignoring malformed '{key}' in application store")
        return []
    return [v for v in value if isinstance(v, str)]
