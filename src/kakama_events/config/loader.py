from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from kakama_events.config.schema import EventsFile, SchedulerSettings

ENV_OVERRIDES = {
    "KAKAMA_EVENTS_ENABLED": "enabled",
    "KAKAMA_EVENTS_TIME_ZONE": "default_time_zone",
    "KAKAMA_EVENTS_LOG_LEVEL": "log_level",
    "KAKAMA_EVENTS_MAX_IDLE_SECONDS": "max_idle_seconds",
}


class ConfigError(Exception):
    """Raised when config loading or validation fails."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class ConfigLoader:
    """Reads an events YAML file and validates it into an EventsFile."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> EventsFile:
        """Load and validate the file. An empty file yields the defaults."""
        if not self.path.is_file():
            raise ConfigError(self.path, "Config file does not exist")

        try:
            raw = yaml.safe_load(self.path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(self.path, f"Invalid YAML: {e}") from e

        if raw is None:
            return EventsFile()
        if not isinstance(raw, dict):
            raise ConfigError(self.path, "Expected a YAML mapping at top level")

        try:
            return EventsFile.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(self.path, f"Validation error: {e}") from e

    def load_with_env(self, environ: Mapping[str, str] | None = None) -> EventsFile:
        """Load the file and re-validate its events under the overridden settings."""
        events_file = self.load()
        settings = self.apply_env(events_file.scheduler, environ)
        if settings is events_file.scheduler:
            return events_file
        try:
            return EventsFile.model_validate(
                {"scheduler": settings.model_dump(), "events": events_file.model_dump()["events"]}
            )
        except ValidationError as e:
            raise ConfigError(self.path, f"Validation error: {e}") from e

    def load_settings(self, environ: Mapping[str, str] | None = None) -> SchedulerSettings:
        """Scheduler settings from the file, with environment overrides applied."""
        return self.apply_env(self.load().scheduler, environ)

    def apply_env(
        self,
        settings: SchedulerSettings,
        environ: Mapping[str, str] | None = None,
    ) -> SchedulerSettings:
        """Override ``settings`` from ``KAKAMA_EVENTS_*`` variables. Blank values are ignored."""
        environ = os.environ if environ is None else environ
        overrides = {
            field: environ[name].strip()
            for name, field in ENV_OVERRIDES.items()
            if environ.get(name, "").strip()
        }
        if not overrides:
            return settings
        try:
            return SchedulerSettings.model_validate({**settings.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigError(self.path, f"Invalid environment override: {e}") from e
