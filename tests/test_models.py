"""Tests for models, naming helpers and the event bus."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

from savekeeper.events import BackupSkipped, EventBus, ScanFinished
from savekeeper.models.application import UNKNOWN_SAVE_PATH, ApplicationEntry, make_app_id
from savekeeper.models.backup_record import BackupCategory, BackupRecord
from savekeeper.models.fingerprint import FileFingerprint
from savekeeper.utils import sanitize_backup_name, simplify_name


class TestSanitizeBackupName:
    def test_spaces_become_underscores(self) -> None:
        assert sanitize_backup_name("Elden Ring") == "Elden_Ring"

    def test_illegal_characters(self) -> None:
        assert sanitize_backup_name('a<b>c:d"e') == "a_b_c_d_e"
        assert sanitize_backup_name("The Witcher 3: Wild Hunt") == "The_Witcher_3__Wild_Hunt"

    def test_trailing_dots_trimmed(self) -> None:
        assert sanitize_backup_name("Game...") == "Game"

    def test_empty_falls_back(self) -> None:
        assert sanitize_backup_name("") == "Unknown"
        assert sanitize_backup_name("???") == "Unknown"

    def test_simplify_name(self) -> None:
        assert simplify_name("Baldur's Gate 3") == "BaldursGate3"


class TestBackupRecord:
    def test_descriptions(self) -> None:
        when = datetime(2024, 2, 3, 4, 5, 6)
        assert BackupRecord.create("/b", BackupCategory.START, when).description == "Start Save (2024-02-03_04-05-06)"
        assert BackupRecord.create("/b", BackupCategory.FORCED, when).description == "Forced save (2024-02-03_04-05-06)"
        restore = BackupRecord.create("/b", BackupCategory.PRE_RESTORE, when)
        assert restore.description == "Automatic backup before restore"
        assert restore.category is BackupCategory.PRE_RESTORE

    def test_only_auto_is_auto(self) -> None:
        when = datetime(2024, 1, 1)
        assert BackupRecord.create("/b", BackupCategory.AUTO, when).is_auto
        assert not BackupRecord.create("/b", BackupCategory.START, when).is_auto

    def test_round_trip(self) -> None:
        record = BackupRecord.create("/b", BackupCategory.AUTO, datetime(2024, 1, 1, 9))
        assert BackupRecord.from_dict(record.to_dict()) == record


class TestApplicationEntry:
    def test_defaults(self) -> None:
        entry = ApplicationEntry(name="X", executable_path="/games/x/x.exe")
        assert entry.install_dir == str(Path("/games/x"))
        assert entry.save_path == UNKNOWN_SAVE_PATH
        assert not entry.has_valid_save_path
        assert entry.executable_name == "x.exe"

    def test_valid_save_path_requires_directory(self, tmp_path: Path) -> None:
        entry = ApplicationEntry(name="X", executable_path="/x.exe", save_path=str(tmp_path / "missing"))
        assert not entry.has_valid_save_path
        entry.save_path = str(tmp_path)
        assert entry.has_valid_save_path

    def test_aware_timestamps_loaded_as_naive(self) -> None:
        entry = ApplicationEntry.from_dict(
            {"name": "X", "executable_path": "/x.exe", "last_backup_time": "2024-01-02T03:04:05+00:00"}
        )
        assert entry.last_backup_time.tzinfo is None
        assert entry.last_backup_time - datetime(2024, 1, 2) < timedelta(days=2)

    def test_app_id_normalized(self) -> None:
        assert make_app_id("/games/./x/x.exe") == make_app_id("/games/x/x.exe")

    def test_fingerprint_key(self) -> None:
        assert FileFingerprint(10, 20).key == "10|20"
        assert FileFingerprint(10, 20, "abc").key == "10|20|abc"


class TestEventBus:
    def test_fan_out_and_unsubscribe(self) -> None:
        bus = EventBus()
        seen: list = []
        unsubscribe = bus.subscribe(seen.append)
        bus.emit(ScanFinished(added=1, cancelled=False))
        unsubscribe()
        bus.emit(ScanFinished(added=2, cancelled=False))
        assert seen == [ScanFinished(added=1, cancelled=False)]

    def test_listener_errors_are_contained(self) -> None:
        bus = EventBus()
        seen: list = []

        def broken(event) -> None:
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        event = BackupSkipped("id", "name", BackupCategory.AUTO, reason="unchanged")
        bus.emit(event)
        assert seen == [event]
