"""Known folders and save-path template expansion (``%APPDATA%/Game/Saves`` → real path)."""

from __future__ import annotations

import glob
import os
import platform
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from loguru import logger

_PLACEHOLDER_RE = re.compile(r"%([^%/\\]+)%")


def _get_documents_path() -> Path:
    """Get the real Documents path (handles relocated folders on Windows)."""
    if platform.system() == "Windows":
        try:
            import ctypes.wintypes

            buf = ctypes.create_unicode_buffer(ctypes.wintypes.MAX_PATH)
            # CSIDL_PERSONAL = 0x0005
            ctypes.windll.shell32.SHGetFolderPathW(None, 0x0005, None, 0, buf)  # type: ignore[union-attr]
            if buf.value:
                return Path(buf.value)
        except (OSError, AttributeError) as e:
            logger.debug(f"Documents folder lookup failed: {e}")
    return Path.home() / "Documents"


@dataclass(frozen=True)
class KnownFolders:
    """Per-user and system roots used by templates and generic probing."""

    home: Path
    documents: Path
    appdata: Path
    local_appdata: Path
    saved_games: Path
    program_files: Path
    program_files_x86: Path

    @property
    def local_low(self) -> Path:
        return self.local_appdata.parent / "LocalLow"

    @property
    def my_games(self) -> Path:
        return self.documents / "My Games"

    @classmethod
    def detect(cls, environ: Mapping[str, str] | None = None) -> KnownFolders:
        """Build the folder mapping for the current system."""
        env = os.environ if environ is None else environ
        home = Path.home()
        if platform.system() == "Windows":
            drive = Path(env.get("SystemDrive", "C:") + "\\")
            return cls(
                home=home,
                documents=_get_documents_path(),
                appdata=Path(env.get("APPDATA", str(home / "AppData" / "Roaming"))),
                local_appdata=Path(env.get("LOCALAPPDATA", str(home / "AppData" / "Local"))),
                saved_games=home / "Saved Games",
                program_files=Path(env.get("ProgramFiles", str(drive / "Program Files"))),
                program_files_x86=Path(
                    env.get("ProgramFiles(x86)", str(drive / "Program Files (x86)"))
                ),
            )
        # Proton / Wine-style layout under the home directory elsewhere.
        return cls(
            home=home,
            documents=_get_documents_path(),
            appdata=Path(env.get("XDG_CONFIG_HOME", str(home / ".config"))),
            local_appdata=Path(env.get("XDG_DATA_HOME", str(home / ".local" / "share"))),
            saved_games=home / "Saved Games",
            program_files=Path("/opt"),
            program_files_x86=Path("/opt"),
        )

    @classmethod
    def under(cls, root: Path) -> KnownFolders:
        """A Windows-shaped folder layout rooted at ``root`` (used by tests and sandboxes)."""
        home = root / "Users" / "player"
        return cls(
            home=home,
            documents=home / "Documents",
            appdata=home / "AppData" / "Roaming",
            local_appdata=home / "AppData" / "Local",
            saved_games=home / "Saved Games",
            program_files=root / "Program Files",
            program_files_x86=root / "Program Files (x86)",
        )

    def placeholders(self) -> dict[str, Path]:
        """Placeholder name (upper-case, without ``%``) → folder."""
        return {
            "USERPROFILE": self.home,
            "HOME": self.home,
            "DOCUMENTS": self.documents,
            "MYDOCUMENTS": self.documents,
            "APPDATA": self.appdata,
            "LOCALAPPDATA": self.local_appdata,
            "LOCALLOW": self.local_low,
            "SAVEDGAMES": self.saved_games,
            "PROGRAMFILES": self.program_files,
            "PROGRAMFILES(X86)": self.program_files_x86,
        }


def expand_template(
    template: str,
    folders: KnownFolders,
    environ: Mapping[str, str] | None = None,
) -> str:
    """
    Substitute ``%NAME%`` placeholders and normalize separators.

    Known folders win over environment variables; unknown placeholders are
    left as-is so the result simply fails to exist.
    """
    if not template:
        return template
    env = os.environ if environ is None else environ
    env_upper = {k.upper(): v for k, v in env.items()}
    mapping = folders.placeholders()

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1).upper()
        if name in mapping:
            return str(mapping[name])
        if name in env_upper:
            return env_upper[name]
        return match.group(0)

    expanded = _PLACEHOLDER_RE.sub(_replace, template)
    return expanded.replace("\\", "/").replace("/", os.sep)


def resolve_wildcards(path: str) -> str | None:
    """
    Resolve ``*`` segments to the first existing directory, or None.

    Paths without wildcards are returned unchanged.
    """
    if "*" not in path:
        return path
    pattern = "*".join(glob.escape(part) for part in path.split("*"))
    for match in sorted(glob.glob(pattern)):
        if os.path.isdir(match):
            return match
    return None


def expand_save_path(
    template: str,
    folders: KnownFolders,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Expand a dataset save-path template into a concrete path (None if a wildcard found nothing)."""
    return resolve_wildcards(expand_template(template, folders, environ))
