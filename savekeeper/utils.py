"""Shared utility functions."""

from __future__ import annotations

import os
import platform
import subprocess
from pathlib import Path

ILLEGAL_FILENAME_CHARS = '<>:"/\\|?*'
UNKNOWN_NAME = "Unknown"


def sanitize_backup_name(name: str) -> str:
    """
    Turn an application display name into a backup folder name.

    Illegal characters split the name and the pieces are re-joined with
    ``_``; spaces become underscores. Falls back to ``Unknown``.
    """
    if not name:
        return UNKNOWN_NAME
    pieces: list[str] = []
    current = ""
    for ch in name:
        if ch in ILLEGAL_FILENAME_CHARS or ord(ch) < 32:
            if current:
                pieces.append(current)
            current = ""
        else:
            current += ch
    if current:
        pieces.append(current)
    sanitized = "_".join(pieces).strip().rstrip(".")
    sanitized = sanitized.replace(" ", "_")
    return sanitized or UNKNOWN_NAME


def simplify_name(name: str) -> str:
    """Strip punctuation and whitespace: ``"Baldur's Gate 3"`` → ``"BaldursGate3"``."""
    return "".join(ch for ch in name if ch.isalnum())


def launch_executable(path: str | Path) -> None:
    """Start an application detached from this process."""
    path = Path(path)
    if platform.system() == "Windows":
        os.startfile(str(path))  # noqa: S606
    else:
        subprocess.Popen([str(path)], cwd=str(path.parent), start_new_session=True)  # noqa: S603
