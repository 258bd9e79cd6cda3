from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from kakama_events.engine.cron import ensure_utc, utc_now
from kakama_events.engine.trigger import Trigger
from kakama_events.errors import EventNotFoundError
from kakama_events.models.event import ScheduledEvent


class EventRegistry:
    """Thread-safe, ID-indexed collection of Triggers.

    All reads and writes happen under one condition variable, which the
    dispatcher also sleeps on so schedule changes wake it up.
    """

    def __init__(
        self,
        default_time_zone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.default_time_zone = default_time_zone
        self._clock = clock
        self._triggers: dict[int, Trigger] = {}
        self._next_id = 1
        self._changed = threading.Condition(threading.Lock())

    def configure_event(self, event: ScheduledEvent) -> int:
        """Insert (``event.id == 0``) or replace the trigger for ``event``.

        The schedule is validated before any state changes. New events get
        the next ID, which is also written back to ``event.id``.
        """
        with self._changed:
            if event.id != 0 and event.id not in self._triggers:
                raise EventNotFoundError(event.id)

            if event.id == 0:
                # Build against a provisional ID so a bad schedule leaves the
                # counter and the event untouched.
                event_id = self._next_id
                event.id = event_id
                try:
                    trigger = Trigger.create_from_event(
                        event, self.default_time_zone, self._clock()
                    )
                except Exception:
                    event.id = 0
                    raise
                self._next_id += 1
            else:
                event_id = event.id
                existing = self._triggers[event_id]
                trigger = Trigger.create_from_event(
                    event, self.default_time_zone, self._clock()
                )
                if not existing.enabled:
                    trigger = replace(trigger, enabled=False)

            self._triggers[event_id] = trigger
            self._changed.notify_all()
        return event_id

    def remove_event(self, event_id: int) -> bool:
        """Remove an event. Unknown IDs are ignored; returns whether one was removed."""
        with self._changed:
            removed = self._triggers.pop(event_id, None) is not None
            if removed:
                self._changed.notify_all()
        return removed

    def set_enabled(self, event_id: int, enabled: bool) -> Trigger:
        with self._changed:
            trigger = self._get(event_id)
            trigger = trigger.with_enabled(enabled, self._clock())
            self._triggers[event_id] = trigger
            self._changed.notify_all()
            return trigger

    def get(self, event_id: int) -> Trigger:
        with self._changed:
            return self._get(event_id)

    def list_all(self) -> list[Trigger]:
        with self._changed:
            return sorted(self._triggers.values(), key=lambda t: t.event_id)

    def get_due_triggers(self, now_utc: datetime) -> list[Trigger]:
        """Triggers due at ``now_utc``, earliest first, ties broken by event ID."""
        with self._changed:
            return self._due(ensure_utc(now_utc))

    def take_due_triggers(self, now_utc: datetime) -> list[Trigger]:
        """Collect due triggers and advance each past ``now_utc`` in one step.

        Returns the triggers as they were before advancing, so callers can
        read the scheduled fire time that made them due.
        """
        now = ensure_utc(now_utc)
        with self._changed:
            due = self._due(now)
            for trigger in due:
                self._triggers[trigger.event_id] = trigger.advance(now, now)
            return due

    def next_fire_time(self) -> datetime | None:
        """Earliest pending fire time across enabled triggers."""
        with self._changed:
            return self._earliest()

    def wait_for_work(
        self,
        max_idle_seconds: float,
        should_stop: Callable[[], bool],
    ) -> None:
        """Sleep until the earliest fire time, a change, or ``max_idle_seconds``."""
        with self._changed:
            if should_stop():
                return
            timeout = max_idle_seconds
            earliest = self._earliest()
            if earliest is not None:
                remaining = (earliest - ensure_utc(self._clock())).total_seconds()
                timeout = min(max(remaining, 0.0), max_idle_seconds)
            if timeout > 0:
                self._changed.wait(timeout)

    def notify(self) -> None:
        with self._changed:
            self._changed.notify_all()

    def clear(self) -> None:
        with self._changed:
            self._triggers.clear()
            self._changed.notify_all()

    def _get(self, event_id: int) -> Trigger:
        trigger = self._triggers.get(event_id)
        if trigger is None:
            raise EventNotFoundError(event_id)
        return trigger

    def _due(self, now: datetime) -> list[Trigger]:
        due = [t for t in self._triggers.values() if t.is_due(now)]
        due.sort(key=lambda t: (t.next_fire_time_utc, t.event_id))
        return due

    def _earliest(self) -> datetime | None:
        times = [
            t.next_fire_time_utc
            for t in self._triggers.values()
            if t.enabled and t.next_fire_time_utc is not None
        ]
        return min(times) if times else None

    def __len__(self) -> int:
        with self._changed:
            return len(self._triggers)

    def __contains__(self, event_id: object) -> bool:
        with self._changed:
            return event_id in self._triggers
