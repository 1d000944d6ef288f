"""Application discovery — candidate executables from game folders and the Windows registry."""

from __future__ import annotations

import os
import platform
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Protocol

from loguru import logger

from savekeeper.events import SaveLocationResolved, ScanFinished
from savekeeper.models.application import ApplicationEntry

if TYPE_CHECKING:
    from savekeeper.core.path_resolver import KnownFolders
    from savekeeper.core.save_locator import SaveLocationResolver
    from savekeeper.data.app_registry import ApplicationRegistry
    from savekeeper.data.known_games import KnownGameDatabase
    from savekeeper.events import EventBus
    from savekeeper.models.known_game import KnownGameDefinition


class CandidateSource(Protocol):
    """Produces executable paths that might be games."""

    name: str

    def list_candidate_executables(self, cancel: threading.Event) -> Iterator[str]: ...


# ── Utility executable filter ──

_UTILITY_PREFIXES = ("unins",)
_UTILITY_TOKENS = (
    "installer",
    "setup",
    "uninstall",
    "update",
    "patch",
    "redist",
    "vcredist",
    "dotnet",
    "repair",
    "helper",
    "crashreport",
    "crashpad",
)
_BLOCKED_NAMES = {
    "msiexec.exe",
    "rundll32.exe",
    "regsvr32.exe",
    "cmd.exe",
    "powershell.exe",
    "pwsh.exe",
}
# Launcher stubs below this size are skipped; real pre-launchers are larger.
SMALL_LAUNCHER_BYTES = 1024 * 1024
# Generic stems replaced by the install folder name for display.
_GENERIC_STEMS = {"game", "launcher", "start", "client", "app", "play", "run"}


def is_utility_executable(path: str | Path) -> bool:
    """Installers, uninstallers, redistributables, updaters and small launcher stubs."""
    name = Path(path).name.lower()
    if name in _BLOCKED_NAMES or name.startswith(_UTILITY_PREFIXES):
        return True
    if any(token in name for token in _UTILITY_TOKENS):
        return True
    if "launcher" in name and "prelauncher" not in name:
        try:
            return os.path.getsize(path) < SMALL_LAUNCHER_BYTES
        except OSError:
            return False
    return False


def display_name_for(executable_path: str | Path) -> str:
    """Default display name: the executable stem, or its folder for generic stems."""
    path = Path(executable_path)
    if path.stem.lower() in _GENERIC_STEMS and path.parent.name:
        return path.parent.name
    return path.stem


# ── Sources ──


def default_game_roots(folders: KnownFolders) -> list[Path]:
    """Common install roots for games, de-duplicated in order."""
    roots: list[Path] = []
    for base in (folders.program_files, folders.program_files_x86):
        roots += [
            base / "Steam" / "steamapps" / "common",
            base / "Epic Games",
            base / "GOG Galaxy" / "Games",
            base / "Origin Games",
            base / "EA Games",
            base / "Ubisoft" / "Ubisoft Game Launcher" / "games",
            base,
        ]
    if platform.system() == "Windows":
        for letter in "CDEFG":
            drive = Path(f"{letter}:\\")
            roots += [drive / "Games", drive / "SteamLibrary" / "steamapps" / "common"]
    else:
        roots.append(folders.home / ".local" / "share" / "Steam" / "steamapps" / "common")

    seen: set[str] = set()
    unique: list[Path] = []
    for root in roots:
        key = os.path.normcase(str(root))
        if key not in seen:
            seen.add(key)
            unique.append(root)
    return unique


def find_executable(directory: Path, names: Iterable[str], max_depth: int = 3) -> Path | None:
    """Find the first of ``names`` (case-insensitive) within ``directory``, breadth-limited."""
    wanted = {n.lower() for n in names if n}
    if not wanted or not directory.is_dir():
        return None
    base_depth = len(directory.parts)
    for dirpath, dirnames, filenames in os.walk(directory):
        for filename in filenames:
            if filename.lower() in wanted:
                return Path(dirpath) / filename
        if len(Path(dirpath).parts) - base_depth >= max_depth:
            dirnames.clear()
    return None


class KnownGameFolderSource:
    """Looks for each known game's executable in its expected folder under common roots."""

    name = "known-game folders"

    def __init__(
        self,
        known_games: KnownGameDatabase,
        roots: Iterable[Path],
        max_depth: int = 3,
    ) -> None:
        self._known_games = known_games
        self._roots = [Path(r) for r in roots]
        self._max_depth = max_depth

    def _folders_for(self, game: KnownGameDefinition) -> list[str]:
        folders = [game.game_location, game.game_folder, game.name]
        return [f for i, f in enumerate(folders) if f and f not in folders[:i]]

    def list_candidate_executables(self, cancel: threading.Event) -> Iterator[str]:
        roots = [r for r in self._roots if r.is_dir()]
        for game in self._known_games:
            if cancel.is_set():
                return
            for root in roots:
                found = None
                for folder in self._folders_for(game):
                    found = find_executable(root / folder, game.all_executables, self._max_depth)
                    if found is not None:
                        break
                if found is not None:
                    yield str(found)
                    break


class RegistryUninstallSource:
    """Installed programs from the Windows uninstall and App Paths registry keys."""

    name = "windows registry"

    UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
    UNINSTALL_KEY_WOW64 = r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"
    APP_PATHS_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\App Paths"

    def list_candidate_executables(self, cancel: threading.Event) -> Iterator[str]:
        if platform.system() != "Windows":
            return
        import winreg

        uninstall_keys = [
            (winreg.HKEY_LOCAL_MACHINE, self.UNINSTALL_KEY, winreg.KEY_WOW64_64KEY),
            (winreg.HKEY_LOCAL_MACHINE, self.UNINSTALL_KEY_WOW64, winreg.KEY_WOW64_32KEY),
            (winreg.HKEY_CURRENT_USER, self.UNINSTALL_KEY, winreg.KEY_WOW64_64KEY),
        ]
        seen: set[str] = set()
        for hive, path, view in uninstall_keys:
            for values in _iter_subkey_values(winreg, hive, path, view, ("InstallLocation", "DisplayIcon")):
                if cancel.is_set():
                    return
                for exe in _executables_from_uninstall(values):
                    key = os.path.normcase(exe)
                    if key not in seen:
                        seen.add(key)
                        yield exe

        for hive in (winreg.HKEY_LOCAL_MACHINE, winreg.HKEY_CURRENT_USER):
            for values in _iter_subkey_values(winreg, hive, self.APP_PATHS_KEY, winreg.KEY_WOW64_64KEY, ("",)):
                if cancel.is_set():
                    return
                exe = _clean_registry_path(values.get("", ""))
                if exe.lower().endswith(".exe") and os.path.isfile(exe):
                    key = os.path.normcase(exe)
                    if key not in seen:
                        seen.add(key)
                        yield exe


def _iter_subkey_values(winreg, hive, path: str, view: int, names: tuple[str, ...]) -> Iterator[dict[str, str]]:
    try:
        base = winreg.OpenKey(hive, path, 0, winreg.KEY_READ | view)
    except OSError:
        return
    with base:
        try:
            count = winreg.QueryInfoKey(base)[0]
        except OSError:
            return
        for index in range(count):
            try:
                sub = winreg.OpenKey(base, winreg.EnumKey(base, index))
            except OSError:
                continue
            with sub:
                values: dict[str, str] = {}
                for name in names:
                    try:
                        value, _ = winreg.QueryValueEx(sub, name)
                    except OSError:
                        continue
                    if isinstance(value, str):
                        values[name] = value
                yield values


def _clean_registry_path(raw: str) -> str:
    """Strip quotes and a trailing icon index (``"C:\\x\\game.exe",0``)."""
    value = raw.strip()
    if value.startswith('"'):
        value = value[1:].split('"', 1)[0]
    elif "," in value and not value.lower().endswith(".exe"):
        value = value.rsplit(",", 1)[0]
    return value.strip()


def _executables_from_uninstall(values: dict[str, str]) -> list[str]:
    icon = _clean_registry_path(values.get("DisplayIcon", ""))
    if icon.lower().endswith(".exe") and os.path.isfile(icon) and not is_utility_executable(icon):
        return [icon]

    location = _clean_registry_path(values.get("InstallLocation", ""))
    if not location or not os.path.isdir(location):
        return []
    try:
        names = sorted(os.listdir(location))
    except OSError:
        return []
    return [
        os.path.join(location, n)
        for n in names
        if n.lower().endswith(".exe") and not is_utility_executable(os.path.join(location, n))
    ]


# ── Scanner ──


@dataclass
class ScanResult:
    added: list[ApplicationEntry] = field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False


class DiscoveryScanner:
    """
    Turns candidate executables into registered applications.

    Each application is committed to the registry as soon as it is built, so
    a cancelled scan keeps everything found so far.
    """

    def __init__(
        self,
        registry: ApplicationRegistry,
        resolver: SaveLocationResolver,
        sources: Iterable[CandidateSource],
        events: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._sources = list(sources)
        self._events = events
        self._running = threading.Lock()

    def add_application(self, executable_path: str | Path, name: str = "") -> ApplicationEntry | None:
        """Register one executable and resolve its save location. None if skipped."""
        path = str(Path(executable_path))
        if self._registry.is_known(path) or not os.path.isfile(path):
            return None

        entry = ApplicationEntry(name=name or display_name_for(path), executable_path=path)
        result = self._resolver.resolve_and_apply(entry)
        if result.game_name and not name:
            entry.name = result.game_name
        if not self._registry.add(entry):
            return None
        logger.info(f"Added application '{entry.name}' (save path: {entry.save_path})")
        if self._events is not None:
            self._events.emit(SaveLocationResolved(entry.app_id, entry.name, result))
        return entry

    def scan(self, cancel: threading.Event | None = None) -> ScanResult:
        """Run every source once. Only one scan runs at a time; a concurrent call returns empty."""
        cancel = cancel or threading.Event()
        result = ScanResult()
        if not self._running.acquire(blocking=False):
            logger.warning("Discovery scan already running")
            return result

        try:
            for source in self._sources:
                if cancel.is_set():
                    break
                logger.info(f"Scanning {source.name}")
                try:
                    for path in source.list_candidate_executables(cancel):
                        if cancel.is_set():
                            break
                        if is_utility_executable(path):
                            result.skipped += 1
                            continue
                        entry = self.add_application(path)
                        if entry is None:
                            result.skipped += 1
                        else:
                            result.added.append(entry)
                except OSError as e:
                    logger.warning(f"Discovery source '{source.name}' failed: {e}")
            result.cancelled = cancel.is_set()
        finally:
            self._running.release()

        if result.cancelled:
            logger.info(f"Scan cancelled, keeping {len(result.added)} application(s) found so far")
        else:
            logger.info(f"Scan finished: {len(result.added)} added, {result.skipped} skipped")
        if self._events is not None:
            self._events.emit(ScanFinished(len(result.added), result.cancelled))
        return result
