"""Shared fixtures."""

from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from savekeeper.config import Config


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class InlineExecutor:
    """Executor that runs jobs synchronously on submit."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


@pytest.fixture
def config(tmp_path: Path) -> Config:
    config = Config(tmp_path / "data")
    with config.batch_update():
        config.set("backup_path", str(tmp_path / "backups"))
        config.set("save_delay", 0)
    return config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    """A save folder with two files, one nested."""
    saves = tmp_path / "saves"
    (saves / "profiles").mkdir(parents=True)
    (saves / "slot1.sav").write_bytes(b"slot one")
    (saves / "profiles" / "player.cfg").write_text("name=player", encoding="utf-8")
    return saves


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
