"""Backup record models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


class BackupCategory(StrEnum):
    """Why a backup was taken. The value prefixes the record description."""

    START = "Start Save"
    AUTO = "Auto save"
    FORCED = "Forced save"
    PRE_RESTORE = "Automatic backup before restore"


@dataclass
class BackupRecord:
    """One backup folder owned by an application, newest first in history."""

    backup_path: str
    created_at: datetime = field(default_factory=datetime.now)
    description: str = ""
    is_auto: bool = False

    @classmethod
    def create(
        cls, backup_path: str, category: BackupCategory, created_at: datetime
    ) -> BackupRecord:
        if category is BackupCategory.PRE_RESTORE:
            description = category.value
        else:
            description = f"{category.value} ({created_at.strftime(TIMESTAMP_FORMAT)})"
        return cls(
            backup_path=backup_path,
            created_at=created_at,
            description=description,
            is_auto=category is BackupCategory.AUTO,
        )

    @property
    def category(self) -> BackupCategory | None:
        for category in BackupCategory:
            if self.description.startswith(category.value):
                return category
        return None

    def to_dict(self) -> dict:
        return {
            "backup_path": self.backup_path,
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "is_auto": self.is_auto,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BackupRecord:
        return cls(
            backup_path=data["backup_path"],
            created_at=datetime.fromisoformat(data["created_at"]),
            description=data.get("description", ""),
            is_auto=bool(data.get("is_auto", False)),
        )
