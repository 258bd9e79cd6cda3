"""Job runner — executes fired events on a dedicated asyncio loop thread."""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import threading

import structlog

from kakama_events.errors import InvalidStateError
from kakama_events.models.event import ScheduledEvent, ScheduledEventParameters

log = structlog.get_logger()


class CancellationSignal:
    """Cooperative cancellation flag shared by the jobs of one scheduler run.

    Jobs on the runner's event loop can ``await signal.wait()``; code in
    worker threads can poll ``is_cancelled`` or call ``wait_blocking``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._flag = threading.Event()
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    def cancel(self) -> None:
        if self._flag.is_set():
            return
        self._flag.set()
        try:
            self._loop.call_soon_threadsafe(self._event.set)
        except RuntimeError:
            # Loop already closed, so nothing can be waiting on it.
            return

    async def wait(self) -> None:
        """Wait until cancellation is requested. Must run on the job loop."""
        await self._event.wait()

    def wait_blocking(self, timeout: float | None = None) -> bool:
        """Block the calling thread until cancelled. Returns True if cancelled."""
        return self._flag.wait(timeout)


class JobRunner:
    """Runs event callbacks as independent tasks on its own event loop thread."""

    def __init__(self, name: str = "kakama-events") -> None:
        self.name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False
        self.cancellation: CancellationSignal | None = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopping

    def start(self) -> None:
        if self._thread is not None:
            raise InvalidStateError(f"Job runner '{self.name}' was already started")
        self._loop = asyncio.new_event_loop()
        self.cancellation = CancellationSignal(self._loop)
        self._thread = threading.Thread(
            target=self._run_loop, name=f"{self.name}-jobs", daemon=True
        )
        self._thread.start()
        self._ready.wait()

    def submit(
        self, event: ScheduledEvent, params: ScheduledEventParameters
    ) -> concurrent.futures.Future:
        """Schedule one firing of ``event``. Returns immediately."""
        if self._loop is None or self._stopping:
            raise InvalidStateError(f"Job runner '{self.name}' is not running")
        return asyncio.run_coroutine_threadsafe(self._invoke(event, params), self._loop)

    def shutdown(self, grace_seconds: float = 30.0) -> None:
        """Signal cancellation and let in-flight jobs drain in the background.

        Jobs still running after ``grace_seconds`` are cancelled, then the
        loop stops. This call does not wait for any of that.
        """
        if self._loop is None or self._stopping:
            return
        self._stopping = True
        if self.cancellation is not None:
            self.cancellation.cancel()
        asyncio.run_coroutine_threadsafe(self._drain(grace_seconds), self._loop)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop thread to finish. Returns True if it has."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run_loop(self) -> None:
        loop = self._loop
        asyncio.set_event_loop(loop)
        loop.call_soon(self._ready.set)
        try:
            loop.run_forever()
        finally:
            try:
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                loop.close()
                log.debug("job runner stopped", runner=self.name)

    async def _invoke(self, event: ScheduledEvent, params: ScheduledEventParameters) -> None:
        task = asyncio.current_task()
        self._tasks.add(task)
        ctx = {"event_id": params.event_id, "event_name": event.event_name}
        try:
            result = event.execute_event(params)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            log.warning("scheduled event cancelled", **ctx)
        except Exception:
            log.exception("scheduled event failed", **ctx)
        else:
            log.debug("scheduled event completed", **ctx)
        finally:
            self._tasks.discard(task)

    async def _drain(self, grace_seconds: float) -> None:
        pending = {t for t in self._tasks if not t.done()}
        if pending:
            log.info(
                "waiting for scheduled events to finish",
                runner=self.name,
                count=len(pending),
                grace_seconds=grace_seconds,
            )
            _, still_running = await asyncio.wait(pending, timeout=grace_seconds)
            if still_running:
                log.warning(
                    "cancelling scheduled events still running",
                    runner=self.name,
                    count=len(still_running),
                )
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)
        asyncio.get_running_loop().stop()
