"""Application context — service container for dependency injection."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from savekeeper.core.fuzzy import search

if TYPE_CHECKING:
    from savekeeper.config import Config
    from savekeeper.core.backup import BackupManager
    from savekeeper.core.change_detector import ChangeDetector
    from savekeeper.core.discovery import DiscoveryScanner, ScanResult
    from savekeeper.core.process_monitor import ProcessMonitor
    from savekeeper.core.restore import RestoreManager
    from savekeeper.core.retention import RetentionManager
    from savekeeper.core.save_locator import SaveLocationResolver
    from savekeeper.core.scheduler import BackupScheduler
    from savekeeper.data.app_registry import ApplicationRegistry
    from savekeeper.data.fingerprint_store import FingerprintStore
    from savekeeper.data.known_games import KnownGameDatabase
    from savekeeper.events import EventBus
    from savekeeper.models.application import ApplicationEntry


@dataclass
class AppContext:
    """
    Central service container.

    A presentation layer receives this at construction time and subscribes
    to ``events``; nothing in the core reaches for globals.
    """

    config: Config
    events: EventBus

    # Data
    registry: ApplicationRegistry
    fingerprint_store: FingerprintStore
    known_games: KnownGameDatabase

    # Save management services
    resolver: SaveLocationResolver
    backup_manager: BackupManager
    change_detector: ChangeDetector
    retention: RetentionManager
    scheduler: BackupScheduler
    restore_manager: RestoreManager
    process_monitor: ProcessMonitor
    discovery: DiscoveryScanner

    scan_cancel: threading.Event = field(default_factory=threading.Event)

    def run_scan(self) -> ScanResult:
        self.scan_cancel.clear()
        return self.discovery.scan(self.scan_cancel)

    def search_applications(self, query: str, include_hidden: bool = False) -> list[ApplicationEntry]:
        """Applications matching every term of ``query`` by name or executable path, best first."""
        entries = self.registry.all_entries() if include_hidden else self.registry.visible_entries()
        return search(entries, query, lambda e: e.name, lambda e: e.executable_path)

    def rename_application(self, executable_path: str, new_name: str) -> bool:
        """Rename and migrate backup folders. Refused while a backup or restore of the app is running."""
        entry = self.registry.get(executable_path)
        if entry is None:
            return False
        with self.scheduler.exclusive(entry) as claimed:
            if not claimed:
                logger.warning(f"Cannot rename '{entry.name}' while a backup is in progress")
                return False
            return self.registry.rename(executable_path, new_name, self.backup_manager)

    def remove_application(self, executable_path: str) -> bool:
        """Forget one application and its change baseline. Backups on disk stay."""
        entry = self.registry.remove(executable_path)
        if entry is None:
            return False
        self.change_detector.forget(entry.app_id)
        return True

    def reset(self) -> None:
        """Cancel any running scan and forget every application."""
        self.scan_cancel.set()
        self.registry.clear()
        self.fingerprint_store.clear()
        self.flush()
        logger.info("All applications reset")

    def flush(self) -> None:
        """Force every pending write to disk."""
        self.registry.save(force=True)
        self.fingerprint_store.save(force=True)
