"""Process monitor — keeps each application's running flag and last-used time current."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Protocol

import psutil
from loguru import logger

from savekeeper.models.application import make_app_id

if TYPE_CHECKING:
    from savekeeper.data.app_registry import ApplicationRegistry

# While an application keeps running, last_used is refreshed at this period.
LAST_USED_REFRESH = timedelta(minutes=30)


class ProcessProbe(Protocol):
    def refresh(self) -> None: ...

    def is_running(self, executable_path: str) -> bool: ...


class PsutilProcessProbe:
    """Snapshot of running executables, taken with psutil on each ``refresh()``."""

    def __init__(self) -> None:
        self._running: frozenset[str] = frozenset()

    def refresh(self) -> None:
        running: set[str] = set()
        for proc in psutil.process_iter(["exe"]):
            exe = proc.info.get("exe")
            if exe:
                running.add(make_app_id(exe))
        self._running = frozenset(running)

    def is_running(self, executable_path: str) -> bool:
        return make_app_id(executable_path) in self._running


class ProcessMonitor:
    """Polls the probe and updates ``is_running`` / ``last_used`` under each entry's lock."""

    def __init__(
        self,
        registry: ApplicationRegistry,
        probe: ProcessProbe,
        interval: float = 2.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._registry = registry
        self._probe = probe
        self._interval = interval
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def poll(self) -> list[str]:
        """One probe pass. Returns the app ids whose running state changed."""
        self._probe.refresh()
        now = self._clock()
        changed: list[str] = []
        for entry in self._registry.all_entries():
            running = self._probe.is_running(entry.executable_path)
            dirty = False
            with entry.lock:
                if running != entry.is_running:
                    entry.is_running = running
                    changed.append(entry.app_id)
                    dirty = True
                    if running:
                        entry.last_used = now
                        logger.info(f"'{entry.name}' started")
                    else:
                        logger.info(f"'{entry.name}' stopped")
                elif running and (entry.last_used is None or now - entry.last_used >= LAST_USED_REFRESH):
                    entry.last_used = now
                    dirty = True
            if dirty:
                self._registry.persist(entry)
        return changed

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="process-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll()
            except (psutil.Error, OSError) as e:
                logger.warning(f"Process check failed: {e}")
            except Exception as e:
                logger.error(f"Process monitor pass failed: {e}")
            self._stop.wait(self._interval)
