"""Per-application settings override and effective-setting resolution."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from savekeeper.config import Config


@dataclass
class AppSettingsOverride:
    """
    Optional per-application settings.

    Only consulted while ``has_custom_settings`` is set; otherwise the
    application inherits the global defaults from ``Config``.
    """

    has_custom_settings: bool = False
    auto_save_enabled: bool = True
    auto_save_interval: int = 15
    max_auto_saves: int = 5
    max_start_saves: int = 3
    start_save_enabled: bool = True
    change_detection_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettingsOverride:
        """Build from stored data; unknown keys are dropped, mistyped values fall back to the default."""
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            if isinstance(f.default, bool):
                if isinstance(raw, bool):
                    values[f.name] = raw
                    continue
            elif not isinstance(raw, bool):
                try:
                    values[f.name] = int(raw)
                    continue
                except (TypeError, ValueError):
                    pass
            logger.warning(f"Ignoring invalid override value {f.name}={raw!r}")
        return cls(**values)

    @classmethod
    def from_config(cls, config: Config) -> AppSettingsOverride:
        """Seed a new override from the current global defaults."""
        return cls(
            has_custom_settings=True,
            auto_save_enabled=config.auto_save_enabled,
            auto_save_interval=config.auto_save_interval,
            max_auto_saves=config.max_auto_saves,
            max_start_saves=config.max_start_saves,
            start_save_enabled=config.start_save_enabled,
            change_detection_enabled=config.change_detection_enabled,
        )


@dataclass(frozen=True)
class EffectiveSettings:
    """Settings in force for one application: override if active, else global."""

    auto_save_enabled: bool
    auto_save_interval: int
    max_auto_saves: int
    max_start_saves: int
    start_save_enabled: bool
    change_detection_enabled: bool

    @classmethod
    def resolve(
        cls, config: Config, override: AppSettingsOverride | None = None
    ) -> EffectiveSettings:
        source: Any = override if override and override.has_custom_settings else config
        return cls(
            auto_save_enabled=bool(source.auto_save_enabled),
            auto_save_interval=max(1, int(source.auto_save_interval)),
            max_auto_saves=max(1, int(source.max_auto_saves)),
            max_start_saves=max(1, int(source.max_start_saves)),
            start_save_enabled=bool(source.start_save_enabled),
            change_detection_enabled=bool(source.change_detection_enabled),
        )
