"""Application entry point — wires services and runs the backup engine headless."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

from loguru import logger

from savekeeper.config import Config
from savekeeper.context import AppContext
from savekeeper.core.backup import BackupManager
from savekeeper.core.change_detector import ChangeDetector
from savekeeper.core.discovery import (
    DiscoveryScanner,
    KnownGameFolderSource,
    RegistryUninstallSource,
    default_game_roots,
)
from savekeeper.core.process_monitor import ProcessMonitor, PsutilProcessProbe
from savekeeper.core.restore import RestoreManager
from savekeeper.core.retention import RetentionManager
from savekeeper.core.save_locator import SaveLocationResolver
from savekeeper.core.scheduler import BackupScheduler
from savekeeper.data.app_registry import ApplicationRegistry
from savekeeper.data.fingerprint_store import FingerprintStore
from savekeeper.data.known_games import KnownGameDatabase
from savekeeper.events import BackupCompleted, BackupFailed, BackupSkipped, Event, EventBus
from savekeeper.logger import setup_logger


def create_context(config_dir: Path | None = None) -> AppContext:
    """Wire all services and return an AppContext."""
    config = Config(config_dir)

    # Logger
    setup_logger(config.data_dir / "logs")

    events = EventBus()

    # Data
    registry = ApplicationRegistry(config.data_dir, config.save_delay)
    registry.load()
    fingerprint_store = FingerprintStore(config.data_dir, config.save_delay)
    known_games = KnownGameDatabase(config.known_games_path)
    known_games.load()

    # Core services
    resolver = SaveLocationResolver(known_games)
    backup_manager = BackupManager(config)
    change_detector = ChangeDetector(fingerprint_store, config)
    retention = RetentionManager()
    scheduler = BackupScheduler(
        config, registry, backup_manager, change_detector, retention, events
    )
    restore_manager = RestoreManager(scheduler, backup_manager, change_detector, registry)
    process_monitor = ProcessMonitor(
        registry, PsutilProcessProbe(), interval=config.process_check_interval
    )
    discovery = DiscoveryScanner(
        registry,
        resolver,
        [
            KnownGameFolderSource(known_games, default_game_roots(resolver.folders)),
            RegistryUninstallSource(),
        ],
        events,
    )

    return AppContext(
        config=config,
        events=events,
        registry=registry,
        fingerprint_store=fingerprint_store,
        known_games=known_games,
        resolver=resolver,
        backup_manager=backup_manager,
        change_detector=change_detector,
        retention=retention,
        scheduler=scheduler,
        restore_manager=restore_manager,
        process_monitor=process_monitor,
        discovery=discovery,
    )


def _log_event(event: Event) -> None:
    if isinstance(event, BackupCompleted):
        logger.success(f"{event.app_name}: {event.record.description}")
    elif isinstance(event, BackupSkipped) and event.message:
        logger.info(f"{event.app_name}: {event.message}")
    elif isinstance(event, BackupFailed):
        logger.warning(f"{event.app_name}: backup failed ({event.error})")


def main() -> int:
    """Application entry point."""
    ctx = create_context()
    ctx.events.subscribe(_log_event)

    scan_thread = None
    if ctx.config.scan_on_start:
        scan_thread = threading.Thread(target=ctx.run_scan, name="discovery", daemon=True)
        scan_thread.start()

    ctx.process_monitor.start()
    ctx.scheduler.start()
    logger.info(f"Watching {len(ctx.registry)} application(s), backups in {ctx.backup_manager.backup_root}")

    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        ctx.scan_cancel.set()
        ctx.process_monitor.stop()
        ctx.scheduler.stop()
        if scan_thread is not None:
            scan_thread.join(timeout=5)
        ctx.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
