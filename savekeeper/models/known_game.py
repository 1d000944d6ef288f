"""Known-game reference data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PureWindowsPath
from typing import Any


@dataclass(frozen=True)
class LauncherInfo:
    """Launcher URIs for a known game (e.g. ``steam://rungameid/...``)."""

    launch: str = ""
    uninstall: str = ""
    store: str = ""


@dataclass(frozen=True)
class KnownGameDefinition:
    """One record of the curated known-game dataset. Read-only once loaded."""

    name: str
    executable: str
    save_path: str
    game_folder: str = ""
    game_location: str = ""
    platform: str = ""
    launcher: LauncherInfo | None = None
    alternate_executables: tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_executables(self) -> tuple[str, ...]:
        return (self.executable, *self.alternate_executables)

    def matches_executable(self, executable_name: str) -> bool:
        """Case-insensitive filename comparison against primary and alternates."""
        wanted = executable_name.casefold()
        return any(exe.casefold() == wanted for exe in self.all_executables if exe)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnownGameDefinition:
        """
        Build a definition from a dataset record.

        Accepts ``savePath`` either as ``{"path": "..."}`` or a bare string,
        and alternates either as ``alternateExecutables`` or the legacy
        ``AlternExec1`` / ``AlternExec2`` keys.
        """
        name = data["name"]
        executable = data["executable"]
        if not isinstance(name, str) or not isinstance(executable, str):
            raise TypeError("name and executable must be strings")

        save_path = data.get("savePath", "")
        if isinstance(save_path, dict):
            save_path = save_path.get("path", "")

        alternates = list(data.get("alternateExecutables") or [])
        for legacy in ("AlternExec1", "AlternExec2"):
            if data.get(legacy):
                alternates.append(data[legacy])

        launcher_data = data.get("launcher")
        launcher = None
        if isinstance(launcher_data, dict):
            launcher = LauncherInfo(
                launch=launcher_data.get("launch", ""),
                uninstall=launcher_data.get("uninstall", ""),
                store=launcher_data.get("store", ""),
            )

        return cls(
            name=name,
            # Only the filename matters for matching.
            executable=PureWindowsPath(executable).name,
            save_path=str(save_path or ""),
            game_folder=data.get("gameFolder", "") or "",
            game_location=data.get("gameLocation", "") or "",
            platform=data.get("platform", "") or "",
            launcher=launcher,
            alternate_executables=tuple(PureWindowsPath(a).name for a in alternates if a),
        )
