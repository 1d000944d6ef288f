"""Known-game dataset — curated executable → save-path reference data."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from loguru import logger

from savekeeper.models.known_game import KnownGameDefinition

BUNDLED_DATASET = Path(__file__).parent / "known_games.json"

_COMMENT_PREFIXES = ("//", "#")


def strip_comment_lines(text: str) -> str:
    """Drop lines whose first non-blank characters are ``//`` or ``#``."""
    return "\n".join(
        line for line in text.splitlines() if not line.lstrip().startswith(_COMMENT_PREFIXES)
    )


def parse_dataset(text: str) -> list[KnownGameDefinition]:
    """
    Parse dataset text into definitions, preserving order.

    Accepts a bare JSON list or ``{"games": [...]}``. Any malformed record
    aborts the whole parse (``ValueError``).
    """
    data = json.loads(strip_comment_lines(text))
    if isinstance(data, dict):
        data = data.get("games")
    if not isinstance(data, list):
        raise ValueError("known-game dataset must be a list of records")
    games: list[KnownGameDefinition] = []
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise ValueError(f"record #{index} is not an object")
        try:
            games.append(KnownGameDefinition.from_dict(record))
        except (KeyError, TypeError) as e:
            raise ValueError(f"record #{index} is malformed: {e}") from e
    return games


class KnownGameDatabase:
    """
    Read-only view of the known-game dataset.

    Loaded once; ``reload()`` re-reads explicitly and ``reload_if_changed()``
    re-reads only when the file's mtime moved. A failed load leaves an empty
    dataset and logs the error.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or BUNDLED_DATASET
        self._games: tuple[KnownGameDefinition, ...] = ()
        self._mtime_ns: int | None = None
        self._loaded = False
        self._lock = threading.Lock()

    @classmethod
    def from_games(cls, games: list[KnownGameDefinition]) -> KnownGameDatabase:
        """Build an in-memory database (no backing file)."""
        db = cls(Path("<memory>"))
        db._games = tuple(games)
        db._loaded = True
        return db

    @property
    def path(self) -> Path:
        return self._path

    @property
    def games(self) -> tuple[KnownGameDefinition, ...]:
        if not self._loaded:
            self.load()
        return self._games

    def __len__(self) -> int:
        return len(self.games)

    def __iter__(self):
        return iter(self.games)

    def load(self) -> None:
        with self._lock:
            self._loaded = True
            try:
                stat = self._path.stat()
                text = self._path.read_text(encoding="utf-8-sig")
                self._games = tuple(parse_dataset(text))
                self._mtime_ns = stat.st_mtime_ns
                logger.info(f"Loaded {len(self._games)} known game(s) from {self._path.name}")
            except (OSError, ValueError) as e:
                # json.JSONDecodeError is a ValueError
                logger.error(f"Failed to load known-game dataset {self._path}: {e}")
                self._games = ()
                self._mtime_ns = None

    def reload(self) -> None:
        self.load()

    def reload_if_changed(self) -> bool:
        """Reload when the dataset file changed on disk. Returns True if reloaded."""
        try:
            mtime = self._path.stat().st_mtime_ns
        except OSError:
            return False
        if self._loaded and mtime == self._mtime_ns:
            return False
        self.load()
        return True

    def find_by_executable(self, executable_name: str) -> list[KnownGameDefinition]:
        return [g for g in self.games if g.matches_executable(executable_name)]

    def find_by_name(self, name: str) -> KnownGameDefinition | None:
        wanted = name.casefold()
        return next((g for g in self.games if g.name.casefold() == wanted), None)
