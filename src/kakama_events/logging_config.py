import logging
import sys
import threading
from collections.abc import Callable
from typing import Any

import structlog

_LEVEL_ALIASES = {
    "warning": "warning",
    "warn": "warning",
    "error": "error",
    "exception": "error",
    "critical": "critical",
    "fatal": "critical",
}


class LogMessageCounter:
    """structlog processor that counts warning, error and critical entries.

    Listeners registered with ``subscribe`` are called with the new count
    each time their level is seen, which makes failing events observable
    without scraping log output.
    """

    LEVELS = ("warning", "error", "critical")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = dict.fromkeys(self.LEVELS, 0)
        self._listeners: dict[str, list[Callable[[int], None]]] = {
            level: [] for level in self.LEVELS
        }

    @property
    def warnings_seen(self) -> int:
        return self._counts["warning"]

    @property
    def errors_seen(self) -> int:
        return self._counts["error"]

    @property
    def criticals_seen(self) -> int:
        return self._counts["critical"]

    def subscribe(self, level: str, callback: Callable[[int], None]) -> None:
        if level not in self._listeners:
            raise ValueError(f"Can only subscribe to {', '.join(self.LEVELS)}, not '{level}'")
        with self._lock:
            self._listeners[level].append(callback)

    def __call__(self, logger: Any, method_name: str, event_dict: dict) -> dict:
        level = _LEVEL_ALIASES.get(str(event_dict.get("level", method_name)).lower())
        if level is None:
            return event_dict
        with self._lock:
            self._counts[level] += 1
            count = self._counts[level]
            listeners = list(self._listeners[level])
        for listener in listeners:
            listener(count)
        return event_dict


def configure_logging(level: str = "INFO", counter: LogMessageCounter | None = None) -> None:
    """Configure structured logging for a process hosting a scheduler."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if counter is not None:
        processors.append(counter)
    if sys.stderr.isatty():
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(event_name: str | None = None, **kwargs: object) -> structlog.BoundLogger:
    """Get a structured logger, optionally bound to an event name."""
    log = structlog.get_logger()
    if event_name:
        log = log.bind(event_name=event_name)
    if kwargs:
        log = log.bind(**kwargs)
    return log
