"""Protocol shared by the active and disabled scheduled-event managers.

Hosts should depend on ``EventScheduler`` rather than a concrete class, and
check ``enabled`` before configuring events::

    if scheduler.enabled:
        scheduler.configure_event(MyEvent())
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kakama_events.models.event import ScheduledEvent


@runtime_checkable
class EventScheduler(Protocol):
    """Contract consumed by the host application."""

    @property
    def enabled(self) -> bool:
        """False for the disabled manager, which refuses to schedule anything."""
        ...

    def configure_event(self, event: ScheduledEvent) -> int:
        """Insert (``event.id == 0``) or update an event. Returns the event ID."""
        ...

    def remove_event(self, event_id: int) -> None:
        """Remove an event; unknown IDs are a no-op."""
        ...

    def start(self) -> None:
        ...

    def dispose(self) -> None:
        ...
