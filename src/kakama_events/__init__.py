"""kakama_events — in-process cron-scheduled events with fire-and-proceed misfire handling."""

__version__ = "0.1.0"

from kakama_events.config.schema import SchedulerSettings  # noqa: E402
from kakama_events.engine.jobs import CancellationSignal  # noqa: E402
from kakama_events.engine.manager import (  # noqa: E402
    DisabledScheduledEventManager,
    ScheduledEventManager,
    create_event_manager,
)
from kakama_events.errors import (  # noqa: E402
    DoubleDisposeError,
    EventNotFoundError,
    InvalidScheduleError,
    InvalidStateError,
    SchedulerDisabledError,
    SchedulerError,
)
from kakama_events.models.event import (  # noqa: E402
    CronEvent,
    ModuleEvent,
    ScheduledEvent,
    ScheduledEventParameters,
)
from kakama_events.protocols import EventScheduler  # noqa: E402

__all__ = [
    "CancellationSignal",
    "CronEvent",
    "DisabledScheduledEventManager",
    "DoubleDisposeError",
    "EventNotFoundError",
    "EventScheduler",
    "InvalidScheduleError",
    "InvalidStateError",
    "ModuleEvent",
    "ScheduledEvent",
    "ScheduledEventManager",
    "ScheduledEventParameters",
    "SchedulerDisabledError",
    "SchedulerError",
    "SchedulerSettings",
    "__version__",
    "create_event_manager",
]
