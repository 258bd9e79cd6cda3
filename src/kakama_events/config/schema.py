from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, field_validator, model_validator

from kakama_events.engine.cron import parse_schedule, resolve_time_zone, utc_now
from kakama_events.models.event import ModuleEvent


class SchedulerSettings(BaseModel):
    """Scheduler-wide settings. All optional."""

    name: str = "kakama-events"
    enabled: bool = True
    default_time_zone: str = "UTC"
    max_idle_seconds: float = 60.0
    shutdown_timeout_seconds: float = 10.0
    job_grace_seconds: float = 30.0
    log_level: str = "INFO"

    @field_validator("default_time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        resolve_time_zone(v)
        return v

    @field_validator("max_idle_seconds")
    @classmethod
    def validate_max_idle(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("'max_idle_seconds' must be positive")
        return v

    @field_validator("shutdown_timeout_seconds", "job_grace_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("timeouts can not be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{v}'")
        return level


class EventConfig(BaseModel):
    """One event from the YAML config: a cron schedule calling ``module:entry_point``."""

    name: str
    cron: str
    time_zone: str | None = None
    module: str
    entry_point: str = "run"
    params: dict[str, Any] = {}

    @model_validator(mode="after")
    def validate_schedule(self) -> "EventConfig":
        # Syntax and explicit zone only. EventsFile checks the schedule again
        # in the zone the scheduler will actually use.
        parse_schedule(self.cron, self.time_zone or "UTC")
        return self

    def to_event(self) -> ModuleEvent:
        return ModuleEvent(
            name=self.name,
            cron_string=self.cron,
            module=self.module,
            entry_point=self.entry_point,
            params=self.params,
            time_zone=self.time_zone,
        )


class EventsFile(BaseModel):
    """Top-level layout of an events YAML file."""

    scheduler: SchedulerSettings = SchedulerSettings()
    events: list[EventConfig] = []

    @model_validator(mode="after")
    def validate_unique_names(self) -> "EventsFile":
        seen: set[str] = set()
        for event in self.events:
            if event.name in seen:
                raise ValueError(f"duplicate event name '{event.name}'")
            seen.add(event.name)
        return self

    @model_validator(mode="after")
    def validate_schedules(self) -> "EventsFile":
        now = utc_now()
        for event in self.events:
            schedule = parse_schedule(event.cron, self.time_zone_for(event))
            if schedule.next_after(now) is None:
                raise ValueError(f"schedule of event '{event.name}' will never fire")
        return self

    def time_zone_for(self, event: EventConfig) -> str:
        """Zone ``event`` is evaluated in once scheduled."""
        return event.time_zone or self.scheduler.default_time_zone
