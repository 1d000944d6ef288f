"""Restore manager — put a backup back into the live save folder."""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from loguru import logger

from savekeeper.core.backup import copy_tree
from savekeeper.core.change_detector import list_save_files
from savekeeper.models.application import UNKNOWN_SAVE_PATH
from savekeeper.models.backup_record import BackupCategory, BackupRecord

if TYPE_CHECKING:
    from savekeeper.core.backup import BackupManager
    from savekeeper.core.change_detector import ChangeDetector
    from savekeeper.core.scheduler import BackupScheduler
    from savekeeper.data.app_registry import ApplicationRegistry
    from savekeeper.models.application import ApplicationEntry


@dataclass
class FileChange:
    """A file the restore will write."""

    relative_path: str
    destination: Path
    exists_locally: bool = False
    is_newer_locally: bool = False


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool = True
    restored_files: int = 0
    pre_restore_backup: BackupRecord | None = None
    warnings: list[str] = field(default_factory=list)
    error: str = ""


class RestoreManager:
    """
    Restore a backup folder over the application's save folder.

    The current save state is backed up first (unbounded "before restore"
    category), the backup is staged next to the save folder, and only then
    is the live folder cleared and refilled.
    """

    def __init__(
        self,
        scheduler: BackupScheduler,
        backup_manager: BackupManager,
        change_detector: ChangeDetector,
        registry: ApplicationRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._scheduler = scheduler
        self._backups = backup_manager
        self._detector = change_detector
        self._registry = registry
        self._clock = clock

    def preview_restore(self, entry: ApplicationEntry, record: BackupRecord) -> list[FileChange]:
        """List the files a restore would write and flag local files that are newer."""
        source = Path(record.backup_path)
        if not source.is_dir() or entry.save_path == UNKNOWN_SAVE_PATH:
            return []

        save_dir = Path(entry.save_path)
        backup_time = record.created_at.timestamp()
        changes: list[FileChange] = []
        for path in list_save_files(source):
            relative = os.path.relpath(path, source)
            dest = save_dir / relative
            change = FileChange(relative_path=relative, destination=dest, exists_locally=dest.is_file())
            if change.exists_locally:
                change.is_newer_locally = dest.stat().st_mtime > backup_time
            changes.append(change)
        return changes

    def restore_backup(self, entry: ApplicationEntry, record: BackupRecord) -> RestoreResult:
        result = RestoreResult()
        source = Path(record.backup_path)

        if not source.is_dir():
            result.success = False
            result.error = f"Backup folder not found: {source}"
            return result

        with entry.lock:
            save_path = entry.save_path
            name = entry.name
        if save_path == UNKNOWN_SAVE_PATH:
            result.success = False
            result.error = f"No save folder known for '{name}'"
            return result

        with self._scheduler.exclusive(entry) as claimed:
            if not claimed:
                result.success = False
                result.error = f"A backup of '{name}' is running, try again shortly"
                return result

            save_dir = Path(save_path)

            # Phase 1: back up the current state
            if save_dir.is_dir() and list_save_files(save_dir):
                try:
                    backup = self._backups.create_backup(
                        save_dir, name, BackupCategory.PRE_RESTORE, self._clock()
                    )
                except OSError as e:
                    result.success = False
                    result.error = f"Could not back up current save before restore: {e}"
                    logger.error(result.error)
                    return result
                if backup is not None:
                    result.pre_restore_backup = backup.record
                    with entry.lock:
                        entry.backup_history.insert(0, backup.record)

            save_dir.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(prefix=".restore_", dir=save_dir.parent) as tmp_dir:
                # Phase 2: stage the backup
                staged = Path(tmp_dir) / "save"
                try:
                    copy_tree(source, staged)
                except OSError as e:
                    result.success = False
                    result.error = f"Could not read backup {source.name}: {e}"
                    logger.error(result.error)
                    self._registry.persist(entry)
                    return result

                # Phase 3: replace the live folder contents
                try:
                    _clear_directory(save_dir)
                    result.restored_files = copy_tree(staged, save_dir)
                except OSError as e:
                    result.success = False
                    result.error = f"Restore into {save_dir} failed: {e}"
                    if result.pre_restore_backup is not None:
                        result.warnings.append(
                            f"Previous save kept in {result.pre_restore_backup.backup_path}"
                        )
                    logger.error(result.error)
                    self._registry.persist(entry)
                    return result

            # Restored state is already backed up; it is the new baseline.
            self._detector.commit(entry.app_id, list_save_files(save_dir))
            self._registry.persist(entry)

        logger.info(f"Restored {result.restored_files} file(s) for '{name}' from {source.name}")
        return result


def _clear_directory(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
