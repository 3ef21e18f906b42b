"""Recurring event expansion.

A recurring event is stored once; its repeats are materialized per query
as :class:`Occurrence` values and never persisted.

Stepping is calendar-aware: the n-th repeat is ``base + n * interval``
units computed with ``dateutil.relativedelta`` from the base start, not
by adding fixed deltas to the previous repeat. Month and year steps that
land on a day the target month does not have are clamped to that month's
last day (Jan 31 + 1 month -> Feb 28/29), and the following repeat goes
back to the 31st where it exists (Mar 31) instead of drifting.
"""
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from groupcal.core.config import settings

if TYPE_CHECKING:
    from groupcal.models.event import Event

MAX_INTERVAL = 999
MAX_OCCURRENCES = 999


class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurrenceEndType(str, Enum):
    NEVER = "never"
    DATE = "date"
    COUNT = "count"


_UNITS = {
    RecurrenceType.DAILY: "days",
    RecurrenceType.WEEKLY: "weeks",
    RecurrenceType.MONTHLY: "months",
    RecurrenceType.YEARLY: "years",
}

_UNIT_NAMES = {
    RecurrenceType.DAILY: ("days", "Daily"),
    RecurrenceType.WEEKLY: ("weeks", "Weekly"),
    RecurrenceType.MONTHLY: ("months", "Monthly"),
    RecurrenceType.YEARLY: ("years", "Yearly"),
}


@dataclass(frozen=True)
class RecurrenceRule:
    """How an event repeats.

    Attributes:
        type: Repeat period, or ``none`` for a one-off event.
        interval: Number of periods between repeats (>= 1).
        end_type: Which end condition applies. ``end_date`` is only read
            when it is ``date`` and ``occurrences`` only when it is
            ``count``.
        end_date: Last moment a repeat may start.
        occurrences: Number of repeats after the base event.
    """
    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    end_type: RecurrenceEndType = RecurrenceEndType.NEVER
    end_date: datetime | None = None
    occurrences: int | None = None

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    def validate(self) -> list[str]:
        """Return a list of problems with this rule; empty when valid."""
        problems = []
        if self.interval < 1 or self.interval > MAX_INTERVAL:
            problems.append(f"interval must be between 1 and {MAX_INTERVAL}")
        if self.end_type == RecurrenceEndType.DATE and self.end_date is None:
            problems.append("end_date is required when end_type is 'date'")
        if self.end_type == RecurrenceEndType.COUNT:
            if self.occurrences is None:
                problems.append("occurrences is required when end_type is 'count'")
            elif self.occurrences < 1 or self.occurrences > MAX_OCCURRENCES:
                problems.append(f"occurrences must be between 1 and {MAX_OCCURRENCES}")
        return problems


@dataclass(frozen=True)
class Occurrence:
    """One materialized repeat of a recurring event.

    Carries the base event and the shifted times; ``index`` is the repeat
    number (1 for the first repeat after the base event).
    """
    event: "Event"
    start_date: datetime
    end_date: datetime
    index: int
    is_recurring: bool = True

    @property
    def original_event_id(self):
        return self.event.id

    @property
    def recurrence_date(self) -> datetime:
        return self.start_date


def shift(start: datetime, rule: RecurrenceRule, steps: int) -> datetime:
    """Return ``start`` moved forward by ``steps`` repeats of ``rule``."""
    unit = _UNITS.get(rule.type)
    if unit is None:
        return start
    return start + relativedelta(**{unit: steps * rule.interval})


class OccurrenceExpansion:
    """Restartable, lazily evaluated sequence of occurrences in a range.

    Iterating twice walks the rule twice; nothing is cached.
    """

    def __init__(
        self,
        base_event: "Event",
        rule: RecurrenceRule,
        range_start: datetime,
        range_end: datetime,
        max_iterations: int | None = None,
    ):
        self.base_event = base_event
        self.rule = rule
        self.range_start = range_start
        self.range_end = range_end
        self.max_iterations = (
            settings.recurrence_max_iterations if max_iterations is None else max_iterations
        )

    @property
    def limit(self) -> int:
        """Number of repeats the rule may produce before the walk stops."""
        if self.rule.end_type == RecurrenceEndType.COUNT and self.rule.occurrences:
            return self.rule.occurrences
        return self.max_iterations

    def __iter__(self) -> Iterator[Occurrence]:
        if not self.rule.is_recurring:
            return
        base_start = self.base_event.start_date
        duration = self.base_event.end_date - base_start
        end_date = self.rule.end_date if self.rule.end_type == RecurrenceEndType.DATE else None

        for index in range(1, self.limit + 1):
            start = shift(base_start, self.rule, index)
            end = start + duration
            if end_date is not None and start > end_date:
                return
            if end < self.range_start:
                continue
            if start > self.range_end:
                return
            yield Occurrence(
                event=self.base_event,
                start_date=start,
                end_date=end,
                index=index,
            )

    def __repr__(self) -> str:
        return (
            f"OccurrenceExpansion(event={self.base_event.id}, type={self.rule.type.value}, "
            f"range={self.range_start.isoformat()}..{self.range_end.isoformat()})"
        )


def generate_occurrences(
    base_event: "Event",
    rule: RecurrenceRule,
    range_start: datetime,
    range_end: datetime,
) -> OccurrenceExpansion:
    """
    Expand ``base_event`` into the repeats that overlap a date range.

    The base event itself is never included. Repeats ending before
    ``range_start`` are stepped over; the walk stops at the first repeat
    starting after ``range_end``, past the rule's end date, after
    ``occurrences`` repeats for count rules, or after the configured
    iteration cap otherwise.
    """
    return OccurrenceExpansion(base_event, rule, range_start, range_end)


def is_date_in_recurrence(day: date | datetime, base_event: "Event", rule: RecurrenceRule) -> bool:
    """Check whether a repeat of ``base_event`` starts on calendar day ``day``."""
    if not rule.is_recurring:
        return False
    if isinstance(day, datetime):
        day = day.date()
    base_start = base_event.start_date
    if day <= base_start.date():
        return False
    if rule.end_type == RecurrenceEndType.DATE and rule.end_date and day > rule.end_date.date():
        return False

    # Estimate the repeat index near ``day`` and probe around it; clamped
    # month ends make the exact index unknowable without stepping.
    if rule.type == RecurrenceType.DAILY:
        approx = (day - base_start.date()).days // rule.interval
    elif rule.type == RecurrenceType.WEEKLY:
        approx = (day - base_start.date()).days // (7 * rule.interval)
    elif rule.type == RecurrenceType.MONTHLY:
        months = (day.year - base_start.year) * 12 + day.month - base_start.month
        approx = months // rule.interval
    else:
        approx = (day.year - base_start.year) // rule.interval

    limit = None
    if rule.end_type == RecurrenceEndType.COUNT and rule.occurrences:
        limit = rule.occurrences
    for index in (approx - 1, approx, approx + 1):
        if index < 1 or (limit is not None and index > limit):
            continue
        if shift(base_start, rule, index).date() == day:
            return True
    return False


def recurrence_summary(rule: RecurrenceRule) -> str:
    """Human readable description, e.g. ``"Every 2 weeks, 3 times"``."""
    if not rule.is_recurring:
        return "Does not repeat"

    plural, adverb = _UNIT_NAMES[rule.type]
    summary = adverb if rule.interval == 1 else f"Every {rule.interval} {plural}"

    if rule.end_type == RecurrenceEndType.DATE and rule.end_date:
        summary += f", until {rule.end_date.date().isoformat()}"
    elif rule.end_type == RecurrenceEndType.COUNT and rule.occurrences:
        times = "time" if rule.occurrences == 1 else "times"
        summary += f", {rule.occurrences} {times}"
    return summary

