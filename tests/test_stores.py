"""Tests for the JSON-backed stores."""

from __future__ import annotations

import json
from pathlib import Path

from savekeeper.data.fingerprint_store import FingerprintStore
from savekeeper.data.json_store import CoalescingWriter, read_json, write_json_atomic


class TestJsonStore:
    def test_atomic_write_and_read(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "data.json"
        assert write_json_atomic(path, {"a": 1})
        assert read_json(path) == {"a": 1}
        assert not path.with_suffix(".tmp").exists()

    def test_corrupt_file_reads_as_none(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        assert read_json(path) is None

    def test_missing_file_reads_as_none(self, tmp_path: Path) -> None:
        assert read_json(tmp_path / "missing.json") is None

    def test_coalesced_until_flush(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        state = {"n": 0}
        writer = CoalescingWriter(path, lambda: dict(state), delay=60)
        for i in range(5):
            state["n"] = i
            writer.schedule()
        assert writer.pending
        assert not path.exists()
        assert writer.flush()
        assert not writer.pending
        assert json.loads(path.read_text(encoding="utf-8")) == {"n": 4}

    def test_zero_delay_writes_immediately(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        CoalescingWriter(path, lambda: [1], delay=0).schedule()
        assert read_json(path) == [1]


class TestFingerprintStore:
    def test_put_get_copy(self, tmp_path: Path) -> None:
        store = FingerprintStore(tmp_path, save_delay=0)
        store.put("app", {"/a": "1|2"})
        snapshot = store.get("app")
        snapshot["/b"] = "x"
        assert store.get("app") == {"/a": "1|2"}

    def test_persists_and_lazy_loads(self, tmp_path: Path) -> None:
        store = FingerprintStore(tmp_path, save_delay=60)
        store.put("app", {"/a": "1|2"})
        store.save(force=True)
        reloaded = FingerprintStore(tmp_path)
        assert reloaded.has("app")
        assert reloaded.get("app") == {"/a": "1|2"}

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        (tmp_path / "file_states.json").write_text("garbage", encoding="utf-8")
        store = FingerprintStore(tmp_path)
        assert store.get("app") is None

    def test_remove_and_clear(self, tmp_path: Path) -> None:
        store = FingerprintStore(tmp_path, save_delay=0)
        store.put("a", {})
        store.put("b", {})
        store.remove("a")
        assert not store.has("a")
        store.clear()
        assert not store.has("b")
