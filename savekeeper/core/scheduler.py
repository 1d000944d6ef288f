"""Backup scheduler — due-checks, change-gated auto saves, start and forced saves."""

from __future__ import annotations

import math
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Iterator

from loguru import logger

from savekeeper.core.change_detector import list_save_files
from savekeeper.core.retention import predicate_for
from savekeeper.events import BackupCompleted, BackupFailed, BackupSkipped
from savekeeper.models.app_settings import EffectiveSettings
from savekeeper.models.backup_record import BackupCategory, BackupRecord
from savekeeper.utils import launch_executable

if TYPE_CHECKING:
    from savekeeper.config import Config
    from savekeeper.core.backup import BackupManager
    from savekeeper.core.change_detector import ChangeDetector
    from savekeeper.core.retention import RetentionManager
    from savekeeper.data.app_registry import ApplicationRegistry
    from savekeeper.events import EventBus
    from savekeeper.models.application import ApplicationEntry

Clock = Callable[[], datetime]

# Last-backup sentinel for applications never backed up: always due.
NEVER = datetime.min


class BackupScheduler:
    """
    Per-application backup state machine, driven by a fixed tick.

    Idle → Due-check (running, valid save dir) → Triggered (interval elapsed,
    auto-save enabled) → ChangeCheck → Copying → Retain. Copies run on a
    worker pool with at most one in-flight job per application; a due-check
    for a busy application is skipped, not queued.
    """

    def __init__(
        self,
        config: Config,
        registry: ApplicationRegistry,
        backup_manager: BackupManager,
        change_detector: ChangeDetector,
        retention: RetentionManager,
        events: EventBus,
        clock: Clock = datetime.now,
        executor: Executor | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._backups = backup_manager
        self._detector = change_detector
        self._retention = retention
        self._events = events
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_backup_workers, thread_name_prefix="backup"
        )
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ── Policy ──

    def effective_settings(self, entry: ApplicationEntry) -> EffectiveSettings:
        return EffectiveSettings.resolve(self._config, entry.settings_override)

    def is_due(self, entry: ApplicationEntry, now: datetime) -> bool:
        """Interval elapsed (in whole minutes) and auto-save enabled."""
        settings = self.effective_settings(entry)
        if not settings.auto_save_enabled:
            return False
        last = entry.last_backup_time or NEVER
        elapsed = math.floor((now - last).total_seconds() / 60)
        return elapsed >= settings.auto_save_interval

    def next_backup_due(self, entry: ApplicationEntry) -> datetime | None:
        """When the next due-check will fire, or None if auto-save is off."""
        settings = self.effective_settings(entry)
        if not settings.auto_save_enabled:
            return None
        if entry.last_backup_time is None:
            return self._clock()
        return entry.last_backup_time + timedelta(minutes=settings.auto_save_interval)

    # ── In-flight guard ──

    def is_busy(self, app_id: str) -> bool:
        with self._lock:
            return app_id in self._in_flight

    def _claim(self, app_id: str) -> bool:
        with self._lock:
            if app_id in self._in_flight:
                return False
            self._in_flight.add(app_id)
            return True

    def _release(self, app_id: str) -> None:
        with self._lock:
            self._in_flight.discard(app_id)

    @contextmanager
    def exclusive(self, entry: ApplicationEntry) -> Iterator[bool]:
        """Hold the application's backup slot; yields False if another job owns it."""
        claimed = self._claim(entry.app_id)
        try:
            yield claimed
        finally:
            if claimed:
                self._release(entry.app_id)

    # ── Tick ──

    def tick(self, now: datetime | None = None) -> list[Future]:
        """Run one due-check pass and dispatch due applications to the worker pool."""
        now = now or self._clock()
        futures: list[Future] = []
        for entry in self._registry.all_entries():
            try:
                with entry.lock:
                    if not entry.is_running or not entry.has_valid_save_path:
                        continue
                    if not self.is_due(entry, now):
                        continue
            except Exception as e:
                logger.error(f"Due-check for '{entry.name}' failed, skipping: {e}")
                continue
            if not self._claim(entry.app_id):
                logger.debug(f"Backup for '{entry.name}' still running, skipping this tick")
                continue
            try:
                futures.append(
                    self._executor.submit(self._run_claimed, entry, BackupCategory.AUTO, self._auto_backup)
                )
            except RuntimeError as e:
                # Executor already shut down.
                self._release(entry.app_id)
                logger.debug(f"Could not dispatch backup for '{entry.name}': {e}")
        return futures

    def _run_claimed(
        self,
        entry: ApplicationEntry,
        category: BackupCategory,
        job: Callable[[ApplicationEntry], BackupRecord | None],
    ) -> BackupRecord | None:
        try:
            return job(entry)
        except Exception as e:
            logger.error(f"Backup job for '{entry.name}' failed: {e}")
            self._events.emit(BackupFailed(entry.app_id, entry.name, category, str(e)))
            return None
        finally:
            self._release(entry.app_id)

    def _auto_backup(self, entry: ApplicationEntry) -> BackupRecord | None:
        now = self._clock()
        with entry.lock:
            save_path = entry.save_path
            override = entry.settings_override
            name = entry.name

        files = list_save_files(save_path)
        if not self._detector.has_changed(entry.app_id, files, override):
            # Snooze: no change postpones the next check by a full interval.
            with entry.lock:
                entry.last_backup_time = now
            self._registry.persist(entry)
            interval = self.effective_settings(entry).auto_save_interval
            logger.info(f"No changes in '{name}', next check in {interval} minute(s)")
            self._events.emit(
                BackupSkipped(
                    entry.app_id,
                    name,
                    BackupCategory.AUTO,
                    reason="unchanged",
                    message=f"No changes detected for '{name}'",
                )
            )
            return None

        return self._backup(entry, BackupCategory.AUTO)

    # ── Copying → Retain ──

    def _backup(self, entry: ApplicationEntry, category: BackupCategory) -> BackupRecord | None:
        now = self._clock()
        with entry.lock:
            save_path = entry.save_path
            name = entry.name
            valid = entry.has_valid_save_path
        app_id = entry.app_id

        if not valid:
            self._events.emit(
                BackupSkipped(app_id, name, category, reason="no-save-path",
                              message=f"Save folder for '{name}' not found")
            )
            return None

        try:
            result = self._backups.create_backup(save_path, name, category, now)
        except OSError as e:
            logger.error(f"Backup of '{name}' failed, will retry: {e}")
            self._events.emit(BackupFailed(app_id, name, category, str(e)))
            return None

        if result is None:
            self._events.emit(
                BackupSkipped(app_id, name, category, reason="empty",
                              message="No files were copied. Save might be empty.")
            )
            return None

        settings = self.effective_settings(entry)
        evicted: list[BackupRecord] = []
        with entry.lock:
            predicate = predicate_for(category)
            if predicate is not None:
                limit = (
                    settings.max_auto_saves
                    if category is BackupCategory.AUTO
                    else settings.max_start_saves
                )
                evicted = self._retention.enforce(entry.backup_history, predicate, limit)
            entry.backup_history.insert(0, result.record)
            entry.last_backup_time = result.record.created_at

        self._detector.commit(app_id, list_save_files(save_path))
        self._registry.persist(entry)
        self._events.emit(
            BackupCompleted(app_id, name, category, result.record, result.files_copied, len(evicted))
        )
        return result.record

    # ── Start / forced saves ──

    def start_save(self, entry: ApplicationEntry) -> BackupRecord | None:
        """Backup taken right before launch. No change check."""
        if not self.effective_settings(entry).start_save_enabled:
            self._events.emit(
                BackupSkipped(entry.app_id, entry.name, BackupCategory.START, reason="disabled")
            )
            return None
        return self._run_now(entry, BackupCategory.START)

    def force_save(self, entry: ApplicationEntry) -> BackupRecord | None:
        """Manual "save now": bypasses the due-check and the change check."""
        return self._run_now(entry, BackupCategory.FORCED)

    def _run_now(self, entry: ApplicationEntry, category: BackupCategory) -> BackupRecord | None:
        with self.exclusive(entry) as claimed:
            if not claimed:
                self._events.emit(
                    BackupSkipped(entry.app_id, entry.name, category, reason="busy",
                                  message=f"A backup of '{entry.name}' is already running")
                )
                return None
            return self._backup(entry, category)

    def launch(
        self,
        entry: ApplicationEntry,
        launcher: Callable[[str], None] = launch_executable,
    ) -> bool:
        """Take a start save (if enabled) and launch the application."""
        self.start_save(entry)
        try:
            launcher(entry.executable_path)
        except OSError as e:
            logger.error(f"Failed to launch '{entry.name}': {e}")
            return False
        with entry.lock:
            entry.last_used = self._clock()
        self._registry.persist(entry)
        logger.info(f"Launched '{entry.name}'")
        return True

    # ── Loop ──

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="backup-scheduler", daemon=True)
        self._thread.start()
        logger.info("Backup scheduler started")

    def stop(self, wait: bool = True) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5 if wait else 0)
            self._thread = None
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        logger.info("Backup scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self._config.tick_interval):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Backup tick failed: {e}")
