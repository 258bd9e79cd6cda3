"""Trigger — binds an event's cron schedule to its next fire time."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from kakama_events.engine.cron import CronSchedule, ensure_utc, parse_schedule, utc_now
from kakama_events.errors import InvalidScheduleError
from kakama_events.models.event import ScheduledEvent


@dataclass(frozen=True)
class Trigger:
    """Immutable snapshot of one event's schedule state.

    Updates produce a new Trigger; the registry swaps it in under its lock.
    """

    event_id: int
    name: str
    event: ScheduledEvent
    schedule: CronSchedule
    next_fire_time_utc: datetime | None
    previous_fire_time_utc: datetime | None = None
    enabled: bool = True

    @property
    def cron_expression(self) -> str:
        return self.schedule.expression

    @property
    def time_zone(self) -> str:
        return self.schedule.time_zone

    @classmethod
    def create_from_event(
        cls,
        event: ScheduledEvent,
        default_time_zone: str = "UTC",
        now_utc: datetime | None = None,
    ) -> Trigger:
        """Build a trigger whose first fire time is the next occurrence after now."""
        time_zone = event.time_zone or default_time_zone
        schedule = parse_schedule(event.cron_string, time_zone)
        now = ensure_utc(now_utc) if now_utc is not None else utc_now()
        first = schedule.next_fire_time(now, now)
        if first is None:
            raise InvalidScheduleError(
                event.cron_string, "the schedule will never fire", time_zone
            )
        return cls(
            event_id=event.id,
            name=event.get_event_name(),
            event=event,
            schedule=schedule,
            next_fire_time_utc=first,
        )

    def advance(self, after_utc: datetime, now_utc: datetime | None = None) -> Trigger:
        """Return a trigger moved to the next occurrence strictly after ``after_utc``."""
        return replace(
            self,
            next_fire_time_utc=self.schedule.next_fire_time(after_utc, now_utc),
            previous_fire_time_utc=self.next_fire_time_utc,
        )

    def with_enabled(self, enabled: bool, now_utc: datetime | None = None) -> Trigger:
        """Pause or resume. Resuming recomputes the next fire time from now."""
        if enabled == self.enabled:
            return self
        if not enabled:
            return replace(self, enabled=False)
        now = ensure_utc(now_utc) if now_utc is not None else utc_now()
        return replace(
            self,
            enabled=True,
            next_fire_time_utc=self.schedule.next_fire_time(now, now),
        )

    def is_due(self, now_utc: datetime) -> bool:
        return (
            self.enabled
            and self.next_fire_time_utc is not None
            and self.next_fire_time_utc <= ensure_utc(now_utc)
        )
