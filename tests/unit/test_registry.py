"""Tests for the event registry."""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from kakama_events.engine.registry import EventRegistry
from kakama_events.errors import EventNotFoundError, InvalidScheduleError
from kakama_events.models.event import CronEvent

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def noop(params) -> None:
    pass


def make_registry() -> EventRegistry:
    return EventRegistry(clock=lambda: T0)


def make_event(name: str = "job", cron: str = "* * * * * ?") -> CronEvent:
    return CronEvent(name, cron, noop)


class TestConfigureEvent:
    def test_assigns_sequential_ids(self) -> None:
        registry = make_registry()
        events = [make_event(f"e{i}") for i in range(3)]
        ids = [registry.configure_event(e) for e in events]
        assert ids == [1, 2, 3]
        assert [e.id for e in events] == [1, 2, 3]
        assert len(registry) == 3

    def test_ids_never_reused(self) -> None:
        registry = make_registry()
        first = make_event()
        registry.configure_event(first)
        registry.configure_event(make_event())
        registry.remove_event(first.id)
        assert registry.configure_event(make_event()) == 3

    def test_update_replaces_trigger(self) -> None:
        registry = make_registry()
        event = make_event()
        registry.configure_event(event)
        event.cron_string = "0 0 12 * * ?"
        assert registry.configure_event(event) == 1
        assert len(registry) == 1
        trigger = registry.get(1)
        assert trigger.cron_expression == "0 0 12 * * ?"
        assert trigger.next_fire_time_utc == T0 + timedelta(hours=12)

    def test_update_unknown_id_raises(self) -> None:
        registry = make_registry()
        event = make_event()
        event.id = 42
        with pytest.raises(EventNotFoundError, match="42"):
            registry.configure_event(event)
        assert len(registry) == 0

    def test_invalid_insert_leaves_no_trace(self) -> None:
        registry = make_registry()
        bad = make_event(cron="not a cron")
        with pytest.raises(InvalidScheduleError):
            registry.configure_event(bad)
        assert bad.id == 0
        assert len(registry) == 0
        assert registry.configure_event(make_event()) == 1

    def test_invalid_update_keeps_old_trigger(self) -> None:
        registry = make_registry()
        event = make_event()
        registry.configure_event(event)
        event.cron_string = "61 * * * * ?"
        with pytest.raises(InvalidScheduleError):
            registry.configure_event(event)
        assert registry.get(1).cron_expression == "* * * * * ?"

    def test_update_keeps_pause(self) -> None:
        registry = make_registry()
        event = make_event()
        registry.configure_event(event)
        registry.set_enabled(1, False)
        event.cron_string = "0 * * * * ?"
        registry.configure_event(event)
        assert not registry.get(1).enabled


class TestRemoveEvent:
    def test_remove(self) -> None:
        registry = make_registry()
        registry.configure_event(make_event())
        assert registry.remove_event(1)
        assert 1 not in registry

    def test_remove_unknown_is_noop(self) -> None:
        registry = make_registry()
        assert not registry.remove_event(99)
        assert not registry.remove_event(0)

    def test_remove_twice(self) -> None:
        registry = make_registry()
        registry.configure_event(make_event())
        registry.remove_event(1)
        assert not registry.remove_event(1)

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(EventNotFoundError):
            make_registry().get(1)


class TestDueTriggers:
    def _populated(self) -> EventRegistry:
        registry = make_registry()
        registry.configure_event(make_event("hourly", "0 0 * * * ?"))
        registry.configure_event(make_event("fast-a"))
        registry.configure_event(make_event("fast-b"))
        return registry

    def test_nothing_due_yet(self) -> None:
        assert self._populated().get_due_triggers(T0) == []

    def test_ordered_by_time_then_id(self) -> None:
        registry = self._populated()
        due = registry.get_due_triggers(T0 + timedelta(hours=2))
        assert [t.event_id for t in due] == [2, 3, 1]

    def test_get_does_not_advance(self) -> None:
        registry = self._populated()
        now = T0 + timedelta(hours=2)
        registry.get_due_triggers(now)
        assert len(registry.get_due_triggers(now)) == 3

    def test_take_advances_past_now(self) -> None:
        registry = self._populated()
        now = T0 + timedelta(hours=2)
        taken = registry.take_due_triggers(now)
        assert [t.next_fire_time_utc for t in taken] == [
            T0 + timedelta(seconds=1),
            T0 + timedelta(seconds=1),
            T0 + timedelta(hours=1),
        ]
        assert registry.get_due_triggers(now) == []
        assert registry.get(2).next_fire_time_utc == now + timedelta(seconds=1)
        assert registry.get(2).previous_fire_time_utc == T0 + timedelta(seconds=1)
        assert registry.get(1).next_fire_time_utc == T0 + timedelta(hours=3)

    def test_paused_not_due(self) -> None:
        registry = self._populated()
        registry.set_enabled(2, False)
        due = registry.get_due_triggers(T0 + timedelta(hours=2))
        assert [t.event_id for t in due] == [3, 1]

    def test_next_fire_time(self) -> None:
        registry = self._populated()
        assert registry.next_fire_time() == T0 + timedelta(seconds=1)

    def test_next_fire_time_empty(self) -> None:
        assert make_registry().next_fire_time() is None

    def test_list_all_sorted_by_id(self) -> None:
        registry = self._populated()
        assert [t.event_id for t in registry.list_all()] == [1, 2, 3]

    def test_clear(self) -> None:
        registry = self._populated()
        registry.clear()
        assert len(registry) == 0


class TestWaitForWork:
    def test_returns_immediately_when_stopping(self) -> None:
        registry = EventRegistry()
        start = time.monotonic()
        registry.wait_for_work(5.0, lambda: True)
        assert time.monotonic() - start < 1.0

    def test_capped_by_max_idle(self) -> None:
        registry = EventRegistry()
        start = time.monotonic()
        registry.wait_for_work(0.1, lambda: False)
        assert time.monotonic() - start < 1.0

    def test_woken_by_notify(self) -> None:
        registry = EventRegistry()
        timer = threading.Timer(0.1, registry.notify)
        timer.start()
        start = time.monotonic()
        registry.wait_for_work(5.0, lambda: False)
        timer.join()
        assert time.monotonic() - start < 2.0

    def test_woken_by_configure(self) -> None:
        registry = EventRegistry()
        timer = threading.Timer(0.1, registry.configure_event, args=(make_event(),))
        timer.start()
        start = time.monotonic()
        registry.wait_for_work(5.0, lambda: False)
        timer.join()
        assert time.monotonic() - start < 2.0
