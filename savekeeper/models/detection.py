"""Save-location detection result."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from savekeeper.models.application import UNKNOWN_SAVE_PATH


class DetectionSource(StrEnum):
    """Which resolution stage produced a result."""

    EXACT = "exact"
    SCORED = "scored"
    GENERIC = "generic"
    NONE = "none"


@dataclass(frozen=True)
class DetectionResult:
    save_path: str = UNKNOWN_SAVE_PATH
    game_name: str = ""
    known_game_id: str = ""
    verified: bool = False
    source: DetectionSource = DetectionSource.NONE

    @property
    def is_resolved(self) -> bool:
        return self.save_path != UNKNOWN_SAVE_PATH

    @classmethod
    def unknown(cls) -> DetectionResult:
        return cls()
