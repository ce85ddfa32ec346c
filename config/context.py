"""Per-session context: user preferences plus the shared collaborators a session needs.

Preferences are read from the backend's key/value area when present, otherwise
defaulted, and written back only through ``save()``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError

from config.logging_config import configure_logging
from config.settings import Settings
from storage.backend import BackendError

if TYPE_CHECKING:
    from storage.backend import DataBackend


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class Preferences(BaseModel):
    push_notifications: bool = True
    theme: Theme = Theme.LIGHT
    language: str = "en"
    tick_interval_sec: int = 30

    def to_hash(self) -> dict[str, str]:
        return {k: json.dumps(v) for k, v in self.model_dump(mode="json").items()}

    @classmethod
    def from_hash(cls, raw: dict[str, str]) -> "Preferences":
        return cls(**{k: json.loads(v) for k, v in raw.items()})


@dataclass
class SessionContext:
    settings: Settings
    backend: "DataBackend"
    session_id: str = "default"
    preferences: Preferences = field(default_factory=Preferences)
    log: structlog.BoundLogger | None = None

    def __post_init__(self):
        if self.log is None:
            self.log = configure_logging(
                "session", self.settings.log_level, self.settings.log_format, session=self.session_id
            )

    @property
    def preferences_key(self) -> str:
        return f"preferences:{self.session_id}"

    @classmethod
    def create(cls, settings: Settings, backend: "DataBackend", session_id: str = "default") -> "SessionContext":
        """Build a context, loading persisted preferences or falling back to defaults."""
        ctx = cls(settings=settings, backend=backend, session_id=session_id)
        ctx.preferences = ctx.load_preferences()
        return ctx

    def load_preferences(self) -> Preferences:
        defaults = Preferences(tick_interval_sec=self.settings.tick_interval_sec)
        try:
            raw = self.backend.load_hash(self.preferences_key)
        except BackendError as e:
            self.log.warning("preferences_load_failed", error=str(e))
            return defaults
        if not raw:
            return defaults
        try:
            return Preferences.from_hash(raw)
        except (ValidationError, ValueError) as e:
            self.log.warning("preferences_invalid", error=str(e))
            return defaults

    def save(self):
        self.backend.save_hash(self.preferences_key, self.preferences.to_hash())
        self.log.info("preferences_saved", **self.preferences.model_dump(mode="json"))
