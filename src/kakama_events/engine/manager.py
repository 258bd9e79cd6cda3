"""Scheduler facades: the active ScheduledEventManager and its disabled twin."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from kakama_events.config.schema import SchedulerSettings
from kakama_events.engine.cron import utc_now
from kakama_events.engine.dispatcher import DispatcherLoop, DispatcherState
from kakama_events.engine.registry import EventRegistry
from kakama_events.engine.trigger import Trigger
from kakama_events.errors import DoubleDisposeError, InvalidStateError, SchedulerDisabledError
from kakama_events.models.event import ScheduledEvent
from kakama_events.protocols import EventScheduler

log = structlog.get_logger()


class ScheduledEventManager:
    """Runs cron-scheduled events in-process.

    ``context`` is handed to every firing through
    ``ScheduledEventParameters.context``. Events may be configured before or
    after ``start()``; nothing fires until the manager is started.
    """

    def __init__(
        self,
        context: Any = None,
        settings: SchedulerSettings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or SchedulerSettings()
        self._registry = EventRegistry(
            default_time_zone=self.settings.default_time_zone, clock=clock
        )
        self._dispatcher = DispatcherLoop(
            self._registry,
            context,
            name=self.settings.name,
            clock=clock,
            max_idle_seconds=self.settings.max_idle_seconds,
            shutdown_timeout_seconds=self.settings.shutdown_timeout_seconds,
            job_grace_seconds=self.settings.job_grace_seconds,
        )
        self._disposed = False

    @property
    def enabled(self) -> bool:
        return True

    @property
    def is_running(self) -> bool:
        return self._dispatcher.state is DispatcherState.RUNNING

    @property
    def event_count(self) -> int:
        return len(self._registry)

    @property
    def dispatcher(self) -> DispatcherLoop:
        return self._dispatcher

    def start(self) -> None:
        self._check_not_disposed()
        self._dispatcher.start()

    def stop(self) -> None:
        """Stop firing events. The manager can be started again afterwards."""
        self._check_not_disposed()
        self._dispatcher.stop()

    def dispose(self) -> None:
        """Stop if running and discard every registered event.

        A manager can only be disposed once.
        """
        if self._disposed:
            raise DoubleDisposeError(f"Scheduler '{self.settings.name}' is already disposed")
        if self._dispatcher.state in (DispatcherState.RUNNING, DispatcherState.FAILED):
            self._dispatcher.stop()
        self._registry.clear()
        self._disposed = True
        log.info("scheduler disposed", scheduler=self.settings.name)

    def configure_event(self, event: ScheduledEvent) -> int:
        """Add an event (``event.id == 0``) or update an existing one. Returns its ID."""
        self._check_not_disposed()
        inserting = event.id == 0
        event_id = self._registry.configure_event(event)
        trigger = self._registry.get(event_id)
        log.info(
            "event added" if inserting else "event updated",
            event_id=event_id,
            event_name=event.event_name,
            cron=trigger.cron_expression,
            time_zone=trigger.time_zone,
            next_fire_time=_iso(trigger.next_fire_time_utc),
        )
        return event_id

    def remove_event(self, event_id: int) -> None:
        """Stop future firings of an event. Unknown IDs are ignored."""
        self._check_not_disposed()
        if self._registry.remove_event(event_id):
            log.info("event removed", event_id=event_id)

    def pause_event(self, event_id: int) -> None:
        self._check_not_disposed()
        self._registry.set_enabled(event_id, False)
        log.info("event paused", event_id=event_id)

    def resume_event(self, event_id: int) -> None:
        self._check_not_disposed()
        trigger = self._registry.set_enabled(event_id, True)
        log.info(
            "event resumed",
            event_id=event_id,
            next_fire_time=_iso(trigger.next_fire_time_utc),
        )

    def get_trigger(self, event_id: int) -> Trigger:
        """Current trigger for an event. Raises EventNotFoundError if unknown."""
        return self._registry.get(event_id)

    def list_triggers(self) -> list[Trigger]:
        return self._registry.list_all()

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise InvalidStateError(f"Scheduler '{self.settings.name}' has been disposed")

    def __enter__(self) -> ScheduledEventManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class DisabledScheduledEventManager:
    """Stand-in used when events must not fire, such as one-shot CLI runs.

    Configuring or starting fails loudly; removing is a no-op since no
    events can exist.
    """

    @property
    def enabled(self) -> bool:
        return False

    @property
    def is_running(self) -> bool:
        return False

    @property
    def event_count(self) -> int:
        return 0

    def start(self) -> None:
        raise SchedulerDisabledError()

    def stop(self) -> None:
        pass

    def dispose(self) -> None:
        pass

    def configure_event(self, event: ScheduledEvent) -> int:
        raise SchedulerDisabledError()

    def remove_event(self, event_id: int) -> None:
        pass

    def pause_event(self, event_id: int) -> None:
        raise SchedulerDisabledError()

    def resume_event(self, event_id: int) -> None:
        raise SchedulerDisabledError()

    def __enter__(self) -> DisabledScheduledEventManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


def create_event_manager(
    context: Any = None,
    settings: SchedulerSettings | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> EventScheduler:
    """Build the active manager, or the disabled one when ``settings.enabled`` is false."""
    settings = settings or SchedulerSettings()
    if not settings.enabled:
        log.info("scheduled events disabled", scheduler=settings.name)
        return DisabledScheduledEventManager()
    return ScheduledEventManager(context, settings, clock=clock)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
