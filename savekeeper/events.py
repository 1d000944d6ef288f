"""Domain events emitted by the backup core, consumed by a presentation layer."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Union

from loguru import logger

from savekeeper.models.backup_record import BackupCategory, BackupRecord
from savekeeper.models.detection import DetectionResult


@dataclass(frozen=True)
class BackupCompleted:
    app_id: str
    app_name: str
    category: BackupCategory
    record: BackupRecord
    files_copied: int
    evicted: int = 0


@dataclass(frozen=True)
class BackupSkipped:
    """A backup attempt that was a no-op by policy (unchanged, empty, disabled …)."""

    app_id: str
    app_name: str
    category: BackupCategory
    reason: str
    message: str = ""


@dataclass(frozen=True)
class BackupFailed:
    app_id: str
    app_name: str
    category: BackupCategory
    error: str


@dataclass(frozen=True)
class SaveLocationResolved:
    app_id: str
    app_name: str
    result: DetectionResult


@dataclass(frozen=True)
class ScanFinished:
    added: int
    cancelled: bool


Event = Union[BackupCompleted, BackupSkipped, BackupFailed, SaveLocationResolved, ScanFinished]
Listener = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out of domain events. Listener errors never reach the emitter."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {type(event).__name__}: {e}")
