"""Atomic JSON writes with debounce-style coalescing."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Callable

from loguru import logger


def write_json_atomic(path: Path, data: Any) -> bool:
    """Write JSON through a temp file + replace. Returns False on failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp.replace(path)
        return True
    except OSError as e:
        logger.error(f"Failed to write {path.name}: {e}")
        tmp.unlink(missing_ok=True)
        return False


def read_json(path: Path) -> Any | None:
    """Read a JSON file; missing or corrupt files yield ``None``."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read {path.name}, starting empty: {e}")
        return None


class CoalescingWriter:
    """
    Coalesces many "please save" requests into one write.

    ``schedule()`` arms a single timer; requests arriving while it is armed
    are absorbed. ``flush()`` cancels the timer and writes synchronously.
    """

    def __init__(self, path: Path, snapshot: Callable[[], Any], delay: float = 2.0) -> None:
        self._path = path
        self._snapshot = snapshot
        self._delay = delay
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._timer_lock:
            return self._timer is not None

    def schedule(self) -> None:
        if self._delay <= 0:
            self.flush()
            return
        with self._timer_lock:
            if self._timer is not None:
                return
            self._timer = threading.Timer(self._delay, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        with self._write_lock:
            return write_json_atomic(self._path, self._snapshot())

    def _on_timer(self) -> None:
        with self._timer_lock:
            self._timer = None
        with self._write_lock:
            write_json_atomic(self._path, self._snapshot())
