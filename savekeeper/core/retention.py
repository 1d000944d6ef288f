"""Retention — bound the number of backups kept per category."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable

from loguru import logger

from savekeeper.models.backup_record import BackupCategory, BackupRecord

RecordPredicate = Callable[[BackupRecord], bool]


def is_auto_backup(record: BackupRecord) -> bool:
    return record.is_auto


def is_start_backup(record: BackupRecord) -> bool:
    return record.category is BackupCategory.START


def predicate_for(category: BackupCategory) -> RecordPredicate | None:
    """Category predicate subject to a limit, or None for unbounded categories."""
    if category is BackupCategory.AUTO:
        return is_auto_backup
    if category is BackupCategory.START:
        return is_start_backup
    return None


class RetentionManager:
    """Evicts the oldest backups of a category to make room for a new one."""

    def enforce(
        self,
        history: list[BackupRecord],
        predicate: RecordPredicate,
        max_count: int,
    ) -> list[BackupRecord]:
        """
        Evict oldest matching records until ``max_count - 1`` remain.

        Called before the new record is inserted, so the post-insert count is
        exactly ``max_count``. ``history`` is modified in place; deletion
        failures are logged and the record is dropped regardless.
        """
        limit = max(1, max_count)
        matching = sorted(
            (r for r in history if predicate(r)), key=lambda r: r.created_at, reverse=True
        )
        if len(matching) < limit:
            return []

        evicted = matching[limit - 1 :]
        for record in evicted:
            self.delete_backup_dir(record)
        evicted_ids = {id(r) for r in evicted}
        history[:] = [r for r in history if id(r) not in evicted_ids]
        logger.debug(f"Evicted {len(evicted)} old backup(s), keeping {limit - 1}")
        return evicted

    @staticmethod
    def delete_backup_dir(record: BackupRecord) -> bool:
        """Remove a backup's directory tree. Returns False (and logs) on failure."""
        path = Path(record.backup_path)
        if not path.exists():
            logger.debug(f"Backup already removed: {path}")
            return True
        try:
            shutil.rmtree(path)
            logger.debug(f"Removed old backup: {path.name}")
            return True
        except OSError as e:
            logger.warning(f"Failed to remove old backup {path}: {e}")
            return False
