"""Tests for the BackupScheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from savekeeper.config import Config
from savekeeper.core.backup import BackupManager
from savekeeper.core.change_detector import ChangeDetector, list_save_files
from savekeeper.core.retention import RetentionManager
from savekeeper.core.scheduler import BackupScheduler
from savekeeper.data.app_registry import ApplicationRegistry
from savekeeper.data.fingerprint_store import FingerprintStore
from savekeeper.events import BackupCompleted, BackupFailed, BackupSkipped, EventBus
from savekeeper.models.app_settings import AppSettingsOverride
from savekeeper.models.application import ApplicationEntry
from savekeeper.models.backup_record import BackupCategory

if TYPE_CHECKING:
    from conftest import FakeClock


@pytest.fixture
def registry(config: Config) -> ApplicationRegistry:
    return ApplicationRegistry(config.data_dir, save_delay=0)


@pytest.fixture
def store(config: Config) -> FingerprintStore:
    return FingerprintStore(config.data_dir, save_delay=0)


@pytest.fixture
def detector(store: FingerprintStore, config: Config) -> ChangeDetector:
    return ChangeDetector(store, config)


@pytest.fixture
def received(events: EventBus) -> list:
    items: list = []
    events.subscribe(items.append)
    return items


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def scheduler(
    config: Config,
    registry: ApplicationRegistry,
    detector: ChangeDetector,
    events: EventBus,
    clock: FakeClock,
    inline_executor,
) -> BackupScheduler:
    config.auto_save_interval = 5
    return BackupScheduler(
        config,
        registry,
        BackupManager(config),
        detector,
        RetentionManager(),
        events,
        clock=clock,
        executor=inline_executor,
    )


@pytest.fixture
def entry(registry: ApplicationRegistry, save_dir: Path, tmp_path: Path, clock: FakeClock) -> ApplicationEntry:
    app = ApplicationEntry(
        name="Test Game",
        executable_path=str(tmp_path / "games" / "TestGame" / "game.exe"),
        save_path=str(save_dir),
        is_running=True,
        last_backup_time=clock.now - timedelta(minutes=6),
    )
    registry.add(app)
    return app


def _results(futures) -> list:
    return [f.result() for f in futures]


class TestDueCheck:
    def test_due_after_interval(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        assert scheduler.is_due(entry, clock.now)

    def test_not_due_before_interval(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        entry.last_backup_time = clock.now - timedelta(minutes=4, seconds=59)
        assert not scheduler.is_due(entry, clock.now)
        assert scheduler.tick() == []

    def test_never_backed_up_is_due(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        entry.last_backup_time = None
        assert scheduler.is_due(entry, clock.now)

    def test_disabled_never_due(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        entry.settings_override = AppSettingsOverride(has_custom_settings=True, auto_save_enabled=False)
        assert not scheduler.is_due(entry, clock.now)
        assert scheduler.next_backup_due(entry) is None

    def test_override_interval(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        entry.settings_override = AppSettingsOverride(has_custom_settings=True, auto_save_interval=10)
        assert not scheduler.is_due(entry, clock.now)
        assert scheduler.next_backup_due(entry) == entry.last_backup_time + timedelta(minutes=10)

    def test_interval_below_one_treated_as_one(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock
    ) -> None:
        entry.settings_override = AppSettingsOverride(has_custom_settings=True, auto_save_interval=0)
        entry.last_backup_time = clock.now - timedelta(seconds=30)
        assert not scheduler.is_due(entry, clock.now)
        entry.last_backup_time = clock.now - timedelta(minutes=1)
        assert scheduler.is_due(entry, clock.now)

    def test_not_running_skipped(self, scheduler: BackupScheduler, entry: ApplicationEntry) -> None:
        entry.is_running = False
        assert scheduler.tick() == []

    def test_unresolved_save_path_skipped(self, scheduler: BackupScheduler, entry: ApplicationEntry) -> None:
        entry.save_path = "Unknown"
        assert scheduler.tick() == []

    def test_failing_due_check_does_not_block_others(
        self,
        scheduler: BackupScheduler,
        registry: ApplicationRegistry,
        entry: ApplicationEntry,
        tmp_path: Path,
    ) -> None:
        entry.last_backup_time = datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)
        other_saves = tmp_path / "other_saves"
        other_saves.mkdir()
        (other_saves / "slot.sav").write_bytes(b"data")
        other = ApplicationEntry(
            name="Other Game",
            executable_path=str(tmp_path / "games" / "Other" / "other.exe"),
            save_path=str(other_saves),
            is_running=True,
        )
        registry.add(other)

        records = _results(scheduler.tick())

        assert len(records) == 1
        assert len(other.backup_history) == 1
        assert entry.backup_history == []


class TestAutoBackup:
    def test_changed_save_creates_record(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock, received: list
    ) -> None:
        records = _results(scheduler.tick())

        assert len(records) == 1
        assert len(entry.backup_history) == 1
        record = entry.backup_history[0]
        assert record.category is BackupCategory.AUTO
        assert record.description.startswith("Auto save (")
        assert entry.last_backup_time == clock.now
        assert isinstance(received[-1], BackupCompleted)

    def test_unchanged_save_snoozes(
        self,
        scheduler: BackupScheduler,
        entry: ApplicationEntry,
        detector: ChangeDetector,
        clock: FakeClock,
        received: list,
    ) -> None:
        detector.commit(entry.app_id, list_save_files(entry.save_path))

        assert _results(scheduler.tick()) == [None]

        assert entry.backup_history == []
        assert entry.last_backup_time == clock.now
        assert isinstance(received[-1], BackupSkipped)
        assert received[-1].reason == "unchanged"

        clock.advance(minutes=4)
        assert scheduler.tick() == []
        clock.advance(minutes=1)
        assert len(scheduler.tick()) == 1

    def test_fingerprints_committed_after_backup(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, detector: ChangeDetector
    ) -> None:
        _results(scheduler.tick())
        assert not detector.has_changed(entry.app_id, list_save_files(entry.save_path))

    def test_retention_bound(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, config: Config, clock: FakeClock
    ) -> None:
        config.max_auto_saves = 2
        for i in range(4):
            (Path(entry.save_path) / "slot1.sav").write_bytes(f"progress {i}".encode())
            _results(scheduler.tick())
            clock.advance(minutes=6)

        autos = [r for r in entry.backup_history if r.is_auto]
        assert len(autos) == 2
        backup_root = Path(autos[0].backup_path).parent
        assert len(list(backup_root.iterdir())) == 2

    def test_empty_save_is_noop(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, tmp_path: Path, clock: FakeClock, received: list
    ) -> None:
        empty = tmp_path / "empty_saves"
        empty.mkdir()
        entry.save_path = str(empty)
        before = entry.last_backup_time

        _results(scheduler.tick())

        assert entry.backup_history == []
        assert entry.last_backup_time == before
        assert received[-1].reason == "empty"

    def test_copy_failure_leaves_state(
        self,
        scheduler: BackupScheduler,
        entry: ApplicationEntry,
        store: FingerprintStore,
        clock: FakeClock,
        received: list,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        before = entry.last_backup_time
        monkeypatch.setattr(
            BackupManager, "create_backup", MagicMock(side_effect=PermissionError("locked"))
        )

        _results(scheduler.tick())

        assert entry.backup_history == []
        assert entry.last_backup_time == before
        assert not store.has(entry.app_id)
        assert isinstance(received[-1], BackupFailed)
        # Still due, so the next tick retries.
        assert scheduler.is_due(entry, clock.now)

    def test_in_flight_skips_tick(self, scheduler: BackupScheduler, entry: ApplicationEntry) -> None:
        with scheduler.exclusive(entry) as claimed:
            assert claimed
            assert scheduler.is_busy(entry.app_id)
            assert scheduler.tick() == []
        assert not scheduler.is_busy(entry.app_id)
        assert len(scheduler.tick()) == 1


class TestManualSaves:
    def test_force_save_ignores_change_check(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, detector: ChangeDetector
    ) -> None:
        detector.commit(entry.app_id, list_save_files(entry.save_path))
        record = scheduler.force_save(entry)
        assert record is not None
        assert record.category is BackupCategory.FORCED
        assert not record.is_auto

    def test_force_save_without_save_path(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, received: list
    ) -> None:
        entry.save_path = "Unknown"
        assert scheduler.force_save(entry) is None
        assert received[-1].reason == "no-save-path"

    def test_force_save_while_busy(self, scheduler: BackupScheduler, entry: ApplicationEntry, received: list) -> None:
        with scheduler.exclusive(entry):
            assert scheduler.force_save(entry) is None
        assert received[-1].reason == "busy"

    def test_forced_saves_unbounded(self, scheduler: BackupScheduler, entry: ApplicationEntry, config: Config, clock: FakeClock) -> None:
        config.max_auto_saves = 1
        for _ in range(3):
            scheduler.force_save(entry)
            clock.advance(seconds=1)
        assert len(entry.backup_history) == 3

    def test_start_save_retention(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, config: Config, clock: FakeClock
    ) -> None:
        config.max_start_saves = 2
        for _ in range(3):
            scheduler.start_save(entry)
            clock.advance(seconds=1)
        starts = [r for r in entry.backup_history if r.category is BackupCategory.START]
        assert len(starts) == 2
        assert entry.last_backup_time == clock.now - timedelta(seconds=1)

    def test_start_save_disabled(
        self, scheduler: BackupScheduler, entry: ApplicationEntry, config: Config, received: list
    ) -> None:
        config.start_save_enabled = False
        assert scheduler.start_save(entry) is None
        assert received[-1].reason == "disabled"

    def test_launch(self, scheduler: BackupScheduler, entry: ApplicationEntry, clock: FakeClock) -> None:
        launcher = MagicMock()
        assert scheduler.launch(entry, launcher=launcher)
        launcher.assert_called_once_with(entry.executable_path)
        assert entry.last_used == clock.now
        assert entry.backup_history[0].category is BackupCategory.START

    def test_launch_failure(self, scheduler: BackupScheduler, entry: ApplicationEntry) -> None:
        launcher = MagicMock(side_effect=FileNotFoundError("gone"))
        assert not scheduler.launch(entry, launcher=launcher)
        assert entry.last_used is None


class TestLoop:
    def test_start_stop(self, scheduler: BackupScheduler) -> None:
        scheduler.start()
        assert scheduler.running
        scheduler.stop()
        assert not scheduler.running
