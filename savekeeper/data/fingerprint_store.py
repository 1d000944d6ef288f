"""Fingerprint store — per-application file-state snapshots, lazily loaded."""

from __future__ import annotations

import threading
from pathlib import Path

from loguru import logger

from savekeeper.data.json_store import CoalescingWriter, read_json
from savekeeper.models.fingerprint import FingerprintSnapshot


class FingerprintStore:
    """
    Maps application id → FingerprintSnapshot, persisted as ``file_states.json``.

    The file is only read on first access. A corrupt or missing file yields
    an empty store rather than an error.
    """

    def __init__(self, data_dir: Path, save_delay: float = 2.0) -> None:
        self._path = data_dir / "file_states.json"
        self._snapshots: dict[str, FingerprintSnapshot] = {}
        self._loaded = False
        self._lock = threading.RLock()
        self._writer = CoalescingWriter(self._path, self._serialize, save_delay)

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            data = read_json(self._path)
            if data is None:
                return
            if not isinstance(data, dict):
                logger.warning("Fingerprint store has unexpected format, starting empty")
                return
            for app_id, snapshot in data.items():
                if isinstance(snapshot, dict):
                    self._snapshots[app_id] = {str(k): str(v) for k, v in snapshot.items()}

    def _serialize(self) -> dict[str, FingerprintSnapshot]:
        with self._lock:
            return {app_id: dict(snap) for app_id, snap in self._snapshots.items()}

    def get(self, app_id: str) -> FingerprintSnapshot | None:
        self._ensure_loaded()
        with self._lock:
            snapshot = self._snapshots.get(app_id)
            return dict(snapshot) if snapshot is not None else None

    def has(self, app_id: str) -> bool:
        self._ensure_loaded()
        with self._lock:
            return app_id in self._snapshots

    def put(self, app_id: str, snapshot: FingerprintSnapshot) -> None:
        self._ensure_loaded()
        with self._lock:
            self._snapshots[app_id] = dict(snapshot)
        self._writer.schedule()

    def remove(self, app_id: str) -> None:
        self._ensure_loaded()
        with self._lock:
            removed = self._snapshots.pop(app_id, None)
        if removed is not None:
            self._writer.schedule()

    def clear(self) -> None:
        self._ensure_loaded()
        with self._lock:
            self._snapshots.clear()
        self._writer.schedule()

    def save(self, force: bool = False) -> None:
        """Persist; ``force`` guarantees the write has completed on return."""
        if force:
            self._ensure_loaded()
            self._writer.flush()
        else:
            self._writer.schedule()
