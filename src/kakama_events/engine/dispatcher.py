"""DispatcherLoop — wakes at the soonest fire time and hands due events to the job runner."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

import structlog

from kakama_events.engine.cron import ensure_utc, utc_now
from kakama_events.engine.jobs import JobRunner
from kakama_events.engine.registry import EventRegistry
from kakama_events.engine.trigger import Trigger
from kakama_events.errors import InvalidStateError
from kakama_events.models.event import ScheduledEventParameters

log = structlog.get_logger()


class DispatcherState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class DispatcherLoop:
    """Drives one EventRegistry from a dedicated background thread.

    Each run gets its own thread, job runner and cancellation signal, so a
    stopped loop can be started again.
    """

    def __init__(
        self,
        registry: EventRegistry,
        context: Any = None,
        *,
        name: str = "kakama-events",
        clock: Callable[[], datetime] = utc_now,
        max_idle_seconds: float = 60.0,
        shutdown_timeout_seconds: float = 10.0,
        job_grace_seconds: float = 30.0,
    ) -> None:
        self.name = name
        self.context = context
        self.max_idle_seconds = max_idle_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.job_grace_seconds = job_grace_seconds
        self._registry = registry
        self._clock = clock
        self._state = DispatcherState.STOPPED
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_requested: threading.Event | None = None
        self._runner: JobRunner | None = None

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def runner(self) -> JobRunner | None:
        return self._runner

    def start(self) -> None:
        """Spawn the loop thread. Raises InvalidStateError unless stopped."""
        with self._state_lock:
            if self._state is not DispatcherState.STOPPED:
                raise InvalidStateError(f"Dispatcher '{self.name}' is already {self._state}")
            runner = JobRunner(self.name)
            runner.start()
            stop_requested = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_requested, runner),
                name=f"{self.name}-dispatcher",
                daemon=True,
            )
            self._runner = runner
            self._stop_requested = stop_requested
            self._state = DispatcherState.RUNNING
            self._thread.start()
        log.info("dispatcher started", scheduler=self.name, events=len(self._registry))

    def stop(self) -> None:
        """Signal cancellation, wait for the loop thread to exit, then stop.

        In-flight callbacks are not waited for; they see the cancellation
        signal and drain on the job runner in the background. Also cleans up
        after a loop that crashed (state ``FAILED``).
        """
        with self._state_lock:
            if self._state not in (DispatcherState.RUNNING, DispatcherState.FAILED):
                raise InvalidStateError(f"Dispatcher '{self.name}' is not running ({self._state})")
            self._state = DispatcherState.STOPPING
            thread, runner, stop_requested = self._thread, self._runner, self._stop_requested

        log.info("dispatcher stopping", scheduler=self.name)
        stop_requested.set()
        if runner.cancellation is not None:
            runner.cancellation.cancel()
        self._registry.notify()

        thread.join(self.shutdown_timeout_seconds)
        if thread.is_alive():
            log.warning(
                "dispatcher thread did not exit in time",
                scheduler=self.name,
                timeout=self.shutdown_timeout_seconds,
            )
        runner.shutdown(self.job_grace_seconds)

        with self._state_lock:
            self._thread = None
            self._runner = None
            self._stop_requested = None
            self._state = DispatcherState.STOPPED
        log.info("dispatcher stopped", scheduler=self.name)

    def run_once(self, now_utc: datetime | None = None) -> list[Trigger]:
        """Fire everything due at ``now_utc`` (default: the clock). Returns the fired triggers."""
        runner = self._runner
        if runner is None or self._state is not DispatcherState.RUNNING:
            raise InvalidStateError(f"Dispatcher '{self.name}' is not running ({self._state})")
        return self._dispatch(runner, now_utc if now_utc is not None else self._clock())

    def _run(self, stop_requested: threading.Event, runner: JobRunner) -> None:
        log.debug("dispatcher loop running", scheduler=self.name)
        try:
            while not stop_requested.is_set():
                self._dispatch(runner, self._clock())
                self._registry.wait_for_work(self.max_idle_seconds, stop_requested.is_set)
        except Exception:
            log.critical("dispatcher loop crashed", scheduler=self.name, exc_info=True)
            with self._state_lock:
                if self._state is DispatcherState.RUNNING and self._stop_requested is stop_requested:
                    self._state = DispatcherState.FAILED
        log.debug("dispatcher loop exited", scheduler=self.name)

    def _dispatch(self, runner: JobRunner, now: datetime) -> list[Trigger]:
        now = ensure_utc(now)
        # The registry has already advanced these past `now`.
        fired = self._registry.take_due_triggers(now)
        for trigger in fired:
            params = ScheduledEventParameters(
                context=self.context,
                event_id=trigger.event_id,
                fire_time_utc=now,
                scheduled_fire_time_utc=trigger.next_fire_time_utc,
                cancellation=runner.cancellation,
            )
            log.debug(
                "event fired",
                event_id=trigger.event_id,
                event_name=trigger.event.event_name,
                scheduled=trigger.next_fire_time_utc.isoformat(),
            )
            runner.submit(trigger.event, params)
        return fired
