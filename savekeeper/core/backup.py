"""Backup manager — timestamped folder copies of a save directory."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from savekeeper.models.backup_record import TIMESTAMP_FORMAT, BackupCategory, BackupRecord
from savekeeper.utils import sanitize_backup_name

if TYPE_CHECKING:
    from savekeeper.config import Config
    from savekeeper.models.application import ApplicationEntry


@dataclass
class BackupResult:
    """A completed copy: the new record and how many files went into it."""

    record: BackupRecord
    files_copied: int


class BackupManager:
    """
    Copies save trees into the backup root.

    Layout::

        {backup_root}/{SanitizedAppName}/{yyyy-MM-dd_HH-mm-ss}/<mirrored save tree>
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    @property
    def backup_root(self) -> Path:
        return self._config.backup_path

    def app_backup_dir(self, app_name: str) -> Path:
        return self.backup_root / sanitize_backup_name(app_name)

    def _new_backup_dir(self, app_name: str, created_at: datetime) -> Path:
        """Create a fresh timestamp folder; same-second collisions get a numeric suffix."""
        parent = self.app_backup_dir(app_name)
        parent.mkdir(parents=True, exist_ok=True)
        stamp = created_at.strftime(TIMESTAMP_FORMAT)
        candidate = parent / stamp
        suffix = 2
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = parent / f"{stamp}_{suffix}"
                suffix += 1

    def create_backup(
        self,
        save_path: str | Path,
        app_name: str,
        category: BackupCategory,
        created_at: datetime,
    ) -> BackupResult | None:
        """
        Copy ``save_path`` into a new timestamp folder.

        Returns None (and removes the folder) when nothing was copied. On an
        I/O error the partial folder is removed and the error re-raised.
        """
        source = Path(save_path)
        if not source.is_dir():
            raise FileNotFoundError(f"Save folder not found: {source}")

        target = self._new_backup_dir(app_name, created_at)
        try:
            files_copied = copy_tree(source, target)
        except OSError:
            shutil.rmtree(target, ignore_errors=True)
            raise

        if files_copied == 0:
            shutil.rmtree(target, ignore_errors=True)
            logger.info(f"No files copied for '{app_name}', discarding empty backup")
            return None

        record = BackupRecord.create(str(target), category, created_at)
        logger.info(f"Created {category.value.lower()} for '{app_name}': {target.name} ({files_copied} file(s))")
        return BackupResult(record=record, files_copied=files_copied)

    def migrate_backups(self, entry: ApplicationEntry, old_name: str, new_name: str) -> int:
        """
        Move backup folders from the old sanitized name to the new one.

        Each timestamp folder is moved individually so it merges with any
        existing folders for the new name. Record paths are rewritten; the old
        root is removed if left empty. Returns the number of folders moved.
        """
        old_root = self.app_backup_dir(old_name)
        new_root = self.app_backup_dir(new_name)
        if old_root == new_root or not old_root.is_dir():
            return 0

        new_root.mkdir(parents=True, exist_ok=True)
        moved: dict[str, str] = {}
        for child in sorted(old_root.iterdir()):
            if not child.is_dir():
                continue
            destination = new_root / child.name
            if destination.exists():
                logger.warning(f"Backup folder already exists, keeping old copy: {destination}")
                continue
            try:
                shutil.move(str(child), str(destination))
                moved[os.path.normcase(str(child))] = str(destination)
            except OSError as e:
                logger.error(f"Failed to move backup folder {child}: {e}")

        for record in entry.backup_history:
            key = os.path.normcase(str(Path(record.backup_path)))
            if key in moved:
                record.backup_path = moved[key]

        try:
            if not any(old_root.iterdir()):
                old_root.rmdir()
        except OSError as e:
            logger.warning(f"Could not clean up old backup folder {old_root}: {e}")

        logger.info(f"Moved {len(moved)} backup folder(s) from '{old_root.name}' to '{new_root.name}'")
        return len(moved)


def copy_tree(source: Path, target: Path) -> int:
    """Recursively copy ``source`` into ``target``. Returns the number of files copied."""
    files_copied = 0
    target.mkdir(parents=True, exist_ok=True)
    for dirpath, dirnames, filenames in os.walk(source, onerror=_raise):
        relative = Path(dirpath).relative_to(source)
        destination_dir = target / relative
        destination_dir.mkdir(parents=True, exist_ok=True)
        for dirname in dirnames:
            (destination_dir / dirname).mkdir(exist_ok=True)
        for filename in filenames:
            shutil.copy2(Path(dirpath) / filename, destination_dir / filename)
            files_copied += 1
    return files_copied


def _raise(error: OSError) -> None:
    # Listing errors (vanished folder, permissions) abort the copy.
    raise error
