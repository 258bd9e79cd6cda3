"""Exception hierarchy for the scheduled-event subsystem."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for every error raised by kakama_events."""


class InvalidScheduleError(SchedulerError, ValueError):
    """Raised when a cron expression or time zone cannot be used."""

    def __init__(
        self,
        expression: str,
        reason: str,
        time_zone: str | None = None,
    ) -> None:
        self.expression = expression
        self.reason = reason
        self.time_zone = time_zone
        where = f" in time zone '{time_zone}'" if time_zone else ""
        super().__init__(f"Invalid schedule '{expression}'{where}: {reason}")


class EventNotFoundError(SchedulerError, LookupError):
    """Raised when an event ID is not present in the registry."""

    def __init__(self, event_id: int) -> None:
        self.event_id = event_id
        super().__init__(f"Can not find event with ID: {event_id}")


class SchedulerDisabledError(SchedulerError, RuntimeError):
    """Raised by the disabled manager on any attempt to schedule work."""

    def __init__(self) -> None:
        super().__init__(
            "Scheduled event manager is disabled, can not configure any events. "
            "This can happen if running in the command line."
        )


class InvalidStateError(SchedulerError, RuntimeError):
    """Raised on lifecycle misuse, e.g. starting a running scheduler."""


class DoubleDisposeError(InvalidStateError):
    """Raised when a scheduler is disposed more than once."""
