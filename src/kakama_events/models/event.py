"""Scheduled events and the parameters handed to them when they fire."""

from __future__ import annotations

import asyncio
import importlib
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kakama_events.engine.jobs import CancellationSignal


@dataclass(frozen=True)
class ScheduledEventParameters:
    """Everything a firing event receives."""

    context: Any
    event_id: int
    fire_time_utc: datetime
    scheduled_fire_time_utc: datetime
    cancellation: CancellationSignal


class ScheduledEvent(ABC):
    """An event the host registers with a scheduler.

    ``id`` stays 0 until the event is configured; the registry writes the
    assigned ID back so the same object can later be passed again to update
    its schedule.
    """

    def __init__(self) -> None:
        self.id = 0

    @property
    @abstractmethod
    def cron_string(self) -> str:
        """Quartz-style cron expression, e.g. ``"0 0 12 * * ?"``."""

    @property
    @abstractmethod
    def event_name(self) -> str:
        """Human readable name."""

    @property
    def time_zone(self) -> str | None:
        """IANA zone the cron expression is evaluated in; ``None`` uses the scheduler default."""
        return None

    def get_event_name(self) -> str:
        """Unique trigger name for this event."""
        return f"{self.event_name} ({self.id})"

    @abstractmethod
    async def execute_event(self, params: ScheduledEventParameters) -> None:
        """Do the event's work. Should watch ``params.cancellation``."""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.id}, name={self.event_name!r}, "
            f"cron={self.cron_string!r})"
        )


class CronEvent(ScheduledEvent):
    """A scheduled event wrapping a plain callable.

    Coroutine functions are awaited; regular functions run in a worker
    thread so they never hold up other events.
    """

    def __init__(
        self,
        name: str,
        cron_string: str,
        callback: Callable[[ScheduledEventParameters], Any],
        time_zone: str | None = None,
    ) -> None:
        super().__init__()
        self._name = name
        self._cron_string = cron_string
        self._time_zone = time_zone
        self.callback = callback

    @property
    def cron_string(self) -> str:
        return self._cron_string

    @cron_string.setter
    def cron_string(self, value: str) -> None:
        self._cron_string = value

    @property
    def event_name(self) -> str:
        return self._name

    @property
    def time_zone(self) -> str | None:
        return self._time_zone

    @time_zone.setter
    def time_zone(self, value: str | None) -> None:
        self._time_zone = value

    async def execute_event(self, params: ScheduledEventParameters) -> None:
        await _call(self.callback, params)


class ModuleEvent(ScheduledEvent):
    """A scheduled event that calls ``module:entry_point`` when it fires.

    The target is imported at fire time and called as
    ``entry_point(params, **event_params)``.
    """

    def __init__(
        self,
        name: str,
        cron_string: str,
        module: str,
        entry_point: str = "run",
        params: dict[str, Any] | None = None,
        time_zone: str | None = None,
    ) -> None:
        super().__init__()
        self._name = name
        self._cron_string = cron_string
        self._time_zone = time_zone
        self.module = module
        self.entry_point = entry_point
        self.params = dict(params or {})

    @property
    def cron_string(self) -> str:
        return self._cron_string

    @property
    def event_name(self) -> str:
        return self._name

    @property
    def time_zone(self) -> str | None:
        return self._time_zone

    def resolve(self) -> Callable[..., Any]:
        """Import and return the entry point. Raises ImportError or AttributeError."""
        mod = importlib.import_module(self.module)
        func = getattr(mod, self.entry_point, None)
        if func is None:
            raise AttributeError(
                f"Module '{self.module}' has no function '{self.entry_point}'"
            )
        return func

    async def execute_event(self, params: ScheduledEventParameters) -> None:
        await _call(self.resolve(), params, **self.params)


async def _call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    if inspect.iscoroutinefunction(func):
        await func(*args, **kwargs)
        return
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        await result
