"""Change detection — decide whether a save directory changed since the last backup."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from savekeeper.models.app_settings import AppSettingsOverride, EffectiveSettings
from savekeeper.models.fingerprint import FileFingerprint, FingerprintSnapshot

if TYPE_CHECKING:
    from savekeeper.config import Config
    from savekeeper.data.fingerprint_store import FingerprintStore

# Files below this size get a content hash in their fingerprint.
HASH_SIZE_LIMIT = 10_000_000
# Above this size only the first and last chunk are hashed.
CHUNKED_HASH_THRESHOLD = 8_000_000
CHUNK_SIZE = 4_000_000
_READ_BLOCK = 8192


def hash_file(path: str | Path) -> str:
    """
    MD5 of a file's content.

    Files larger than ``CHUNKED_HASH_THRESHOLD`` only contribute their first
    and last ``CHUNK_SIZE`` bytes.
    """
    h = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size > CHUNKED_HASH_THRESHOLD:
            _update_from(f, h, CHUNK_SIZE)
            f.seek(max(0, size - CHUNK_SIZE))
            _update_from(f, h, CHUNK_SIZE)
        else:
            for block in iter(lambda: f.read(_READ_BLOCK), b""):
                h.update(block)
    return h.hexdigest()


def _update_from(f, h, limit: int) -> None:
    remaining = limit
    while remaining > 0:
        block = f.read(min(_READ_BLOCK, remaining))
        if not block:
            break
        h.update(block)
        remaining -= len(block)


def fingerprint_file(path: str | Path) -> FileFingerprint:
    """Fingerprint one file. Raises OSError if it cannot be read."""
    stat = os.stat(path)
    content_hash = ""
    if stat.st_size < HASH_SIZE_LIMIT:
        content_hash = hash_file(path)
    return FileFingerprint(size=stat.st_size, mtime_ns=stat.st_mtime_ns, content_hash=content_hash)


def compute_fingerprints(paths: Iterable[str | Path]) -> FingerprintSnapshot:
    """Fingerprint every readable file; missing or unreadable files are left out."""
    snapshot: FingerprintSnapshot = {}
    for path in paths:
        key = os.path.abspath(str(path))
        try:
            if not os.path.isfile(key):
                continue
            snapshot[key] = fingerprint_file(key).key
        except OSError as e:
            logger.debug(f"Skipping fingerprint for {key}: {e}")
    return snapshot


def list_save_files(save_dir: str | Path) -> list[str]:
    """Every regular file beneath ``save_dir``, recursively."""
    root = Path(save_dir)
    if not root.is_dir():
        return []
    files: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            files.append(os.path.join(dirpath, filename))
    return files


class ChangeDetector:
    """
    Compares fresh fingerprints against the stored baseline for an application.

    The baseline only moves on ``commit()``, which the scheduler calls after
    a backup completed.
    """

    def __init__(self, store: FingerprintStore, config: Config) -> None:
        self._store = store
        self._config = config

    def is_enabled(self, override: AppSettingsOverride | None = None) -> bool:
        return EffectiveSettings.resolve(self._config, override).change_detection_enabled

    def has_changed(
        self,
        app_id: str,
        paths: Iterable[str | Path],
        override: AppSettingsOverride | None = None,
    ) -> bool:
        if not self.is_enabled(override):
            logger.debug(f"Change detection disabled for {app_id}, forcing backup")
            return True

        previous = self._store.get(app_id)
        if previous is None:
            logger.debug(f"No previous file states for {app_id}, treating as changed")
            return True

        try:
            current = compute_fingerprints(paths)
        except Exception as e:
            logger.warning(f"Change detection failed for {app_id}, assuming changed: {e}")
            return True

        changed = current != previous
        logger.debug(
            f"Change detection for {app_id}: "
            f"{'changes detected' if changed else 'no changes'} ({len(current)} file(s))"
        )
        return changed

    def commit(self, app_id: str, paths: Iterable[str | Path]) -> FingerprintSnapshot:
        """Store the current state of ``paths`` as the new baseline."""
        snapshot = compute_fingerprints(paths)
        self._store.put(app_id, snapshot)
        return snapshot

    def forget(self, app_id: str) -> None:
        self._store.remove(app_id)
