"""File fingerprint model used for change detection."""

from __future__ import annotations

from dataclasses import dataclass

# Absolute file path → fingerprint key, scoped to one application id.
FingerprintSnapshot = dict[str, str]


@dataclass(frozen=True)
class FileFingerprint:
    """Comparable summary of one file's state."""

    size: int
    mtime_ns: int
    content_hash: str = ""

    @property
    def key(self) -> str:
        key = f"{self.size}|{self.mtime_ns}"
        if self.content_hash:
            key += f"|{self.content_hash}"
        return key
