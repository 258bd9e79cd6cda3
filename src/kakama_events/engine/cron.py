"""Cron evaluation for Quartz-style expressions, backed by croniter.

Expressions have six or seven fields::

    seconds minutes hours day-of-month month day-of-week [year]

``?`` stands for "no specific value" and must fill exactly one of the two
day fields. Day-of-week runs ``1-7`` starting on Sunday, ``nL`` is the last
weekday ``n`` of the month, and the optional year field is limited to
1970-2099. Fields are translated to croniter's layout (seconds last, Sunday
as 0) and evaluated in the schedule's time zone.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from kakama_events.errors import InvalidScheduleError

MIN_YEAR = 1970
MAX_YEAR = 2099

_WILDCARDS = {"*", "?"}
_NUMBER = re.compile(r"^\d+$")
_DAY_NAMES = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_time_zone(name: str, expression: str = "") -> ZoneInfo:
    """Look up an IANA time zone, raising ``InvalidScheduleError`` if unknown."""
    if not name or not isinstance(name, str):
        raise InvalidScheduleError(expression, "time zone is empty", name or None)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidScheduleError(expression, f"unknown time zone '{name}'", name) from None


@dataclass(frozen=True)
class CronSchedule:
    """A validated cron expression bound to a time zone."""

    expression: str
    time_zone: str
    zone: ZoneInfo
    croniter_expression: str
    years: tuple[int, ...] | None = None

    def next_after(self, after_utc: datetime) -> datetime | None:
        """Next matching instant strictly after ``after_utc``, in UTC.

        Returns ``None`` once no further instant exists, which only happens
        when a year field has run out.
        """
        start = ensure_utc(after_utc).astimezone(self.zone)
        for _ in range(MAX_YEAR - MIN_YEAR + 2):
            try:
                candidate = croniter(self.croniter_expression, start).get_next(datetime)
            except ValueError:
                # croniter gives up on dates that can never match (e.g. Feb 30).
                return None
            if self.years is None or candidate.year in self.years:
                return ensure_utc(candidate)
            later = [year for year in self.years if year > candidate.year]
            if not later:
                return None
            start = datetime(later[0] - 1, 12, 31, 23, 59, 59, tzinfo=self.zone)
        return None

    def next_fire_time(
        self, after_utc: datetime, now_utc: datetime | None = None
    ) -> datetime | None:
        """Next fire time after ``after_utc`` with the fire-and-proceed misfire policy.

        If the next occurrence already lies in the past relative to
        ``now_utc`` (the wall clock by default), the current instant is
        returned so the firing happens immediately instead of being skipped.
        """
        candidate = self.next_after(after_utc)
        if candidate is None:
            return None
        now = ensure_utc(now_utc) if now_utc is not None else utc_now()
        if candidate < now:
            return now
        return candidate

    def iter_after(self, after_utc: datetime) -> Iterator[datetime]:
        """Yield successive fire times after ``after_utc`` (no misfire handling)."""
        current = self.next_after(after_utc)
        while current is not None:
            yield current
            current = self.next_after(current)


def parse_schedule(expression: str, time_zone: str = "UTC") -> CronSchedule:
    """Validate ``expression`` in ``time_zone`` and compile it for evaluation."""
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleError(str(expression), "expression is empty", time_zone)

    fields = expression.split()
    if len(fields) not in (6, 7):
        raise InvalidScheduleError(
            expression, f"expected 6 or 7 fields, got {len(fields)}", time_zone
        )
    zone = resolve_time_zone(time_zone, expression)

    seconds, minutes, hours, day_of_month, month, day_of_week = fields[:6]
    years = _parse_years(fields[6], expression, time_zone) if len(fields) == 7 else None

    if any("?" in f for f in (seconds, minutes, hours, month)):
        raise InvalidScheduleError(
            expression, "'?' is only allowed in the day-of-month and day-of-week fields", time_zone
        )
    if day_of_month not in _WILDCARDS and day_of_week not in _WILDCARDS:
        raise InvalidScheduleError(
            expression,
            "day-of-month and day-of-week can not both be specified, use '?' for one of them",
            time_zone,
        )
    if (day_of_month == "?") == (day_of_week == "?"):
        raise InvalidScheduleError(
            expression,
            "exactly one of day-of-month and day-of-week must be '?'",
            time_zone,
        )

    translated = " ".join(
        [
            minutes,
            hours,
            "*" if day_of_month == "?" else day_of_month,
            month,
            "*" if day_of_week == "?" else _shift_day_of_week(day_of_week, expression, time_zone),
            seconds,
        ]
    )
    if not croniter.is_valid(translated):
        raise InvalidScheduleError(expression, "malformed cron expression", time_zone)

    return CronSchedule(
        expression=expression,
        time_zone=time_zone,
        zone=zone,
        croniter_expression=translated,
        years=years,
    )


def next_fire_time(
    expression: str,
    time_zone: str,
    after_utc: datetime,
    now_utc: datetime | None = None,
) -> datetime | None:
    """Compute the next fire time for ``expression`` after ``after_utc``.

    Raises ``InvalidScheduleError`` for malformed expressions or unknown zones.
    """
    return parse_schedule(expression, time_zone).next_fire_time(after_utc, now_utc)


def _shift_day_of_week(field: str, expression: str, time_zone: str) -> str:
    """Convert Quartz day numbers (1 = SUN) to croniter's (0 = SUN)."""
    parts = []
    for part in field.split(","):
        base, sep, step = part.partition("/")
        if len(base) > 1 and base.upper().endswith("L"):
            base = f"L{_shift_day(_day_number(base[:-1]), expression, time_zone)}"
        elif "#" in base:
            day, _, nth = base.partition("#")
            base = f"{_shift_day(day, expression, time_zone)}#{nth}"
        elif "-" in base:
            start, _, end = base.partition("-")
            base = (
                f"{_shift_day(start, expression, time_zone)}-"
                f"{_shift_day(end, expression, time_zone)}"
            )
        else:
            base = _shift_day(base, expression, time_zone)
        parts.append(f"{base}{sep}{step}")
    return ",".join(parts)


def _day_number(token: str) -> str:
    """Quartz number (1 = SUN) for a day name; other tokens pass through."""
    name = token.upper()
    if name in _DAY_NAMES:
        return str(_DAY_NAMES.index(name) + 1)
    return token


def _shift_day(token: str, expression: str, time_zone: str) -> str:
    # Names and wildcards are left for croniter to interpret.
    if not _NUMBER.match(token):
        return token
    day = int(token)
    if not 1 <= day <= 7:
        raise InvalidScheduleError(
            expression, f"day-of-week value {day} outside 1-7", time_zone
        )
    return str(day - 1)


def _parse_years(field: str, expression: str, time_zone: str) -> tuple[int, ...] | None:
    if field in _WILDCARDS:
        return None

    def bad(reason: str) -> InvalidScheduleError:
        return InvalidScheduleError(expression, reason, time_zone)

    years: set[int] = set()
    for part in field.split(","):
        base, sep, step_text = part.partition("/")
        step = 1
        if sep:
            if not _NUMBER.match(step_text) or int(step_text) == 0:
                raise bad(f"invalid year step in '{part}'")
            step = int(step_text)

        if base == "*":
            start, end = MIN_YEAR, MAX_YEAR
        elif "-" in base:
            low, _, high = base.partition("-")
            if not (_NUMBER.match(low) and _NUMBER.match(high)):
                raise bad(f"invalid year range '{part}'")
            start, end = int(low), int(high)
        elif _NUMBER.match(base):
            start = int(base)
            end = MAX_YEAR if sep else start
        else:
            raise bad(f"invalid year value '{part}'")

        if not MIN_YEAR <= start <= end <= MAX_YEAR:
            raise bad(f"year '{part}' outside {MIN_YEAR}-{MAX_YEAR}")
        years.update(range(start, end + 1, step))
    return tuple(sorted(years))
