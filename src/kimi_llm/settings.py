"""Settings snapshot consumed by the provider."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_API_URL = "https://api.moonshot.cn/v1"


class AvailableModel(BaseModel):
    """A model declared in settings. Overrides the built-in entry with the same name."""

    model_config = ConfigDict(frozen=True)

    name: str
    max_tokens: int
    max_output_tokens: int | None = None
    display_name: str | None = None


class KimiSettings(BaseModel):
    """Immutable settings snapshot.

    ``low_speed_timeout`` is in seconds. ``None`` disables the stall check.
    """

    model_config = ConfigDict(frozen=True)

    api_url: str = DEFAULT_API_URL
    low_speed_timeout: float | None = None
    available_models: tuple[AvailableModel, ...] = Field(default_factory=tuple)

    @classmethod
    def from_json_file(cls, path: str | Path) -> KimiSettings:
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


SettingsSource = Callable[[], KimiSettings]


def settings_source(settings: KimiSettings | SettingsSource | None) -> SettingsSource:
    """Normalize a fixed snapshot or a snapshot callable into a callable."""
    if settings is None:
        settings = KimiSettings()
    if isinstance(settings, KimiSettings):
        snapshot = settings
        return lambda: snapshot
    return settings
