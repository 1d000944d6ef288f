"""Save-location resolution — known-game lookup, scored matching, generic probing."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Mapping, Protocol

from loguru import logger

from savekeeper.core.path_resolver import KnownFolders, expand_save_path
from savekeeper.events import SaveLocationResolved
from savekeeper.models.detection import DetectionResult, DetectionSource
from savekeeper.utils import simplify_name

if TYPE_CHECKING:
    from savekeeper.data.known_games import KnownGameDatabase
    from savekeeper.events import EventBus
    from savekeeper.models.application import ApplicationEntry
    from savekeeper.models.known_game import KnownGameDefinition

# ── Scoring weights ──

SCORE_EXACT_EXECUTABLE = 100
SCORE_PARTIAL_EXECUTABLE = 50
SCORE_PRELAUNCHER = 200
SCORE_LAUNCHER = 90
SCORE_EXACT_NAME = 80
SCORE_PARTIAL_NAME = 40
SCORE_FOLDER_HINT = 60
MIN_SCORE = 30
# At or above this score a candidate is accepted when only its parent folder exists.
OPTIMISTIC_SCORE = 80

_VENDOR_PREFIXES = ("red", "ubi", "origin", "epic", "rockstar", "bethesda")
_VENDOR_ROOTS = ("Electronic Arts", "Ubisoft", "Rockstar Games")
_SAVE_SUBFOLDERS = (
    "Saves",
    "SavedGames",
    "SaveGames",
    "save",
    "saves",
    "savegame",
    "savegames",
    os.path.join("data", "saves"),
)


class AppIdentity(Protocol):
    name: str
    executable_path: str
    install_dir: str


@dataclass(frozen=True)
class ScoredCandidate:
    game: KnownGameDefinition
    score: int
    order: int


def _is_launcher(exe_lower: str) -> bool:
    stem = exe_lower.removesuffix(".exe")
    return (
        "launcher" in stem
        or stem.startswith(_VENDOR_PREFIXES)
        or stem.endswith(_VENDOR_PREFIXES)
    )


def score_candidate(app: AppIdentity, game: KnownGameDefinition) -> int:
    """Heuristic match score of ``app`` against one known-game definition."""
    exe_lower = Path(app.executable_path).name.lower()
    exe_stem = exe_lower.removesuffix(".exe")
    name_lower = app.name.strip().lower()
    install_lower = str(app.install_dir or Path(app.executable_path).parent).lower()
    hint = game.game_folder.strip().lower()
    hint_in_path = bool(hint) and hint in install_lower

    score = 0
    if game.matches_executable(exe_lower):
        score += SCORE_EXACT_EXECUTABLE
    else:
        for candidate in game.all_executables:
            candidate_stem = candidate.lower().removesuffix(".exe")
            if candidate_stem and exe_stem and (candidate_stem in exe_stem or exe_stem in candidate_stem):
                score += SCORE_PARTIAL_EXECUTABLE
                break

    if hint_in_path and _is_launcher(exe_lower):
        score += SCORE_PRELAUNCHER if "prelauncher" in exe_lower else SCORE_LAUNCHER

    game_name = game.name.strip().lower()
    if name_lower and game_name:
        if name_lower == game_name:
            score += SCORE_EXACT_NAME
        elif name_lower in game_name or game_name in name_lower:
            score += SCORE_PARTIAL_NAME

    if hint_in_path:
        score += SCORE_FOLDER_HINT
    return score


class SaveLocationResolver:
    """
    Locates an application's save directory.

    Stages run in order and stop at the first directory-validated hit:
    exact executable match against the known-game dataset, scored heuristic
    match, then generic probing of conventional save locations.
    """

    def __init__(
        self,
        known_games: KnownGameDatabase,
        folders: KnownFolders | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._known_games = known_games
        self._folders = folders or KnownFolders.detect(environ)
        self._environ = environ

    @property
    def folders(self) -> KnownFolders:
        return self._folders

    def expand(self, template: str) -> str | None:
        return expand_save_path(template, self._folders, self._environ)

    def resolve(self, app: AppIdentity) -> DetectionResult:
        result = self._resolve_exact(app)
        if result is not None:
            return result
        result = self._resolve_scored(app)
        if result is not None:
            return result
        return self._resolve_generic(app)

    # ── Stage 1 ──

    def _resolve_exact(self, app: AppIdentity) -> DetectionResult | None:
        exe_name = Path(app.executable_path).name
        matches = self._known_games.find_by_executable(exe_name)
        if not matches:
            return None

        for game in matches:
            path = self.expand(game.save_path)
            if path and os.path.isdir(path):
                logger.debug(f"Exact match for {exe_name}: {game.name} → {path}")
                return DetectionResult(
                    save_path=path,
                    game_name=game.name,
                    known_game_id=game.name,
                    verified=True,
                    source=DetectionSource.EXACT,
                )

        if len(matches) == 1:
            game = matches[0]
            logger.debug(f"Save path for {game.name} doesn't exist yet, tagging without a path")
            return DetectionResult(
                game_name=game.name,
                known_game_id=game.name,
                verified=False,
                source=DetectionSource.EXACT,
            )
        return None

    # ── Stage 2 ──

    def scored_candidates(self, app: AppIdentity) -> list[ScoredCandidate]:
        """Candidates at or above the minimum score, best first (dataset order on ties)."""
        candidates = [
            ScoredCandidate(game, score, order)
            for order, game in enumerate(self._known_games)
            if (score := score_candidate(app, game)) >= MIN_SCORE
        ]
        candidates.sort(key=lambda c: (-c.score, c.order))
        return candidates

    def _resolve_scored(self, app: AppIdentity) -> DetectionResult | None:
        for candidate in self.scored_candidates(app):
            path = self.expand(candidate.game.save_path)
            if not path:
                continue
            if os.path.isdir(path):
                verified = True
            elif candidate.score >= OPTIMISTIC_SCORE and os.path.isdir(os.path.dirname(path)):
                verified = False
            else:
                continue
            logger.debug(
                f"Scored match for {app.name}: {candidate.game.name} "
                f"(score {candidate.score}{'' if verified else ', unverified'}) → {path}"
            )
            return DetectionResult(
                save_path=path,
                game_name=candidate.game.name,
                known_game_id=candidate.game.name,
                verified=verified,
                source=DetectionSource.SCORED,
            )
        return None

    # ── Stage 3 ──

    def generic_locations(self, app: AppIdentity) -> Iterator[Path]:
        """Conventional save locations for ``app``, most specific first."""
        f = self._folders
        names = [app.name]
        simplified = simplify_name(app.name)
        if simplified and simplified != app.name:
            names.append(simplified)
        exe_dir = Path(app.install_dir or Path(app.executable_path).parent)

        for name in names:
            yield f.local_appdata / "EpicGamesLauncher" / "Saved" / "savegames" / name
            for vendor in _VENDOR_ROOTS:
                yield f.documents / vendor / name
            yield f.documents / name
            yield f.appdata / name
            yield f.local_appdata / name
            yield f.local_low / name
            yield f.saved_games / name
            yield f.my_games / name

        for sub in _SAVE_SUBFOLDERS:
            yield exe_dir / sub
        for name in names:
            yield f.appdata / "SaveGames" / name
            yield f.home / ".config" / name
        yield exe_dir.parent / "Saves"
        yield exe_dir.parent / "SavedGames"

    def _resolve_generic(self, app: AppIdentity) -> DetectionResult:
        if not app.name.strip():
            return DetectionResult.unknown()

        for location in self.generic_locations(app):
            if location.is_dir():
                logger.debug(f"Generic save location for {app.name}: {location}")
                return DetectionResult(
                    save_path=str(location), verified=True, source=DetectionSource.GENERIC
                )

        exe_dir = Path(app.install_dir or Path(app.executable_path).parent)
        for folder in (exe_dir, exe_dir.parent):
            found = _find_save_like_folder(folder)
            if found is not None:
                return DetectionResult(
                    save_path=str(found), verified=True, source=DetectionSource.GENERIC
                )

        logger.debug(f"No save location found for {app.name}")
        return DetectionResult.unknown()

    # ── Caller-side application ──

    def resolve_and_apply(self, entry: ApplicationEntry, events: EventBus | None = None) -> DetectionResult:
        """
        Resolve and store the result on ``entry``.

        A save path set by the user is kept; only the game tag is refreshed.
        The caller persists the entry.
        """
        result = self.resolve(entry)
        with entry.lock:
            if result.known_game_id:
                entry.known_game_id = result.known_game_id
            if not entry.custom_save_path:
                entry.save_path = result.save_path
        if events is not None:
            events.emit(SaveLocationResolved(entry.app_id, entry.name, result))
        return result


def _find_save_like_folder(directory: Path) -> Path | None:
    """First immediate sub-folder whose name contains "save"."""
    try:
        children = sorted(directory.iterdir())
    except OSError:
        return None
    for child in children:
        if "save" in child.name.lower() and child.is_dir():
            return child
    return None
