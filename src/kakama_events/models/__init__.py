from kakama_events.models.event import (
    CronEvent,
    ModuleEvent,
    ScheduledEvent,
    ScheduledEventParameters,
)

__all__ = [
    "CronEvent",
    "ModuleEvent",
    "ScheduledEvent",
    "ScheduledEventParameters",
]
