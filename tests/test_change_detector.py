"""Tests for fingerprinting and change detection."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from savekeeper.config import Config
from savekeeper.core import change_detector as cd
from savekeeper.core.change_detector import (
    ChangeDetector,
    compute_fingerprints,
    fingerprint_file,
    hash_file,
    list_save_files,
)
from savekeeper.data.fingerprint_store import FingerprintStore
from savekeeper.models.app_settings import AppSettingsOverride


@pytest.fixture
def store(config: Config) -> FingerprintStore:
    return FingerprintStore(config.data_dir, save_delay=0)


@pytest.fixture
def detector(store: FingerprintStore, config: Config) -> ChangeDetector:
    return ChangeDetector(store, config)


class TestFingerprints:
    def test_small_file_has_hash(self, tmp_path: Path) -> None:
        f = tmp_path / "a.sav"
        f.write_bytes(b"abc")
        fp = fingerprint_file(f)
        assert fp.size == 3
        assert fp.content_hash == "900150983cd24fb0d6963f7d28e17f72"
        assert fp.key.startswith("3|")
        assert fp.key.endswith("|900150983cd24fb0d6963f7d28e17f72")

    def test_large_file_has_no_hash(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cd, "HASH_SIZE_LIMIT", 4)
        f = tmp_path / "big.sav"
        f.write_bytes(b"12345678")
        fp = fingerprint_file(f)
        assert fp.content_hash == ""
        assert fp.key.count("|") == 1

    def test_chunked_hash_ignores_middle(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cd, "CHUNKED_HASH_THRESHOLD", 8)
        monkeypatch.setattr(cd, "CHUNK_SIZE", 4)
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"HEAD" + b"xxxxxxxx" + b"TAIL")
        b.write_bytes(b"HEAD" + b"yyyyyyyy" + b"TAIL")
        assert hash_file(a) == hash_file(b)

    def test_missing_files_are_skipped(self, tmp_path: Path, save_dir: Path) -> None:
        paths = list_save_files(save_dir) + [str(tmp_path / "gone.sav")]
        snapshot = compute_fingerprints(paths)
        assert len(snapshot) == 2
        assert all(os.path.isabs(p) for p in snapshot)

    def test_list_save_files_recurses(self, save_dir: Path) -> None:
        names = sorted(Path(p).name for p in list_save_files(save_dir))
        assert names == ["player.cfg", "slot1.sav"]

    def test_list_save_files_missing_dir(self, tmp_path: Path) -> None:
        assert list_save_files(tmp_path / "nope") == []


class TestChangeDetector:
    def test_no_baseline_means_changed(self, detector: ChangeDetector, save_dir: Path) -> None:
        assert detector.has_changed("app", list_save_files(save_dir))

    def test_unchanged_after_commit(self, detector: ChangeDetector, save_dir: Path) -> None:
        paths = list_save_files(save_dir)
        detector.commit("app", paths)
        assert not detector.has_changed("app", paths)

    def test_content_change_detected(self, detector: ChangeDetector, save_dir: Path) -> None:
        detector.commit("app", list_save_files(save_dir))
        (save_dir / "slot1.sav").write_bytes(b"slot two")
        assert detector.has_changed("app", list_save_files(save_dir))

    def test_new_file_detected(self, detector: ChangeDetector, save_dir: Path) -> None:
        detector.commit("app", list_save_files(save_dir))
        (save_dir / "slot2.sav").write_bytes(b"new")
        assert detector.has_changed("app", list_save_files(save_dir))

    def test_deleted_file_detected(self, detector: ChangeDetector, save_dir: Path) -> None:
        detector.commit("app", list_save_files(save_dir))
        (save_dir / "slot1.sav").unlink()
        assert detector.has_changed("app", list_save_files(save_dir))

    def test_disabled_globally_always_changed(
        self, detector: ChangeDetector, config: Config, save_dir: Path
    ) -> None:
        paths = list_save_files(save_dir)
        detector.commit("app", paths)
        config.change_detection_enabled = False
        assert detector.has_changed("app", paths)

    def test_override_wins(self, detector: ChangeDetector, save_dir: Path) -> None:
        paths = list_save_files(save_dir)
        detector.commit("app", paths)
        override = AppSettingsOverride(has_custom_settings=True, change_detection_enabled=False)
        assert detector.has_changed("app", paths, override)
        inactive = AppSettingsOverride(has_custom_settings=False, change_detection_enabled=False)
        assert not detector.has_changed("app", paths, inactive)

    def test_snapshots_are_per_app(self, detector: ChangeDetector, save_dir: Path) -> None:
        paths = list_save_files(save_dir)
        detector.commit("one", paths)
        assert detector.has_changed("two", paths)

    def test_forget(self, detector: ChangeDetector, store: FingerprintStore, save_dir: Path) -> None:
        detector.commit("app", list_save_files(save_dir))
        detector.forget("app")
        assert not store.has("app")
