from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta

from taskcycle.domain.entities import RecurrencePreview
from taskcycle.domain.rules import (
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    WeeklyRule,
    YearlyRule,
    describe_rule,
)

DEFAULT_PREVIEW_COUNT = 50


def next_occurrence(rule: RecurrenceRule, anchor: datetime) -> datetime | None:
    """Occurrence that follows ``anchor``, or None once the rule has ended.

    Pinned days that do not exist in the target month are clamped to the
    month's last day.
    """
    interval = max(int(rule.interval), 1)

    if isinstance(rule, WeeklyRule):
        candidate = _next_weekly(anchor, rule.days_of_week, interval)
    elif isinstance(rule, MonthlyRule):
        candidate = _add_months(anchor, interval, day=rule.day_of_month)
    elif isinstance(rule, YearlyRule):
        candidate = _add_months(
            anchor,
            interval * 12,
            month=rule.month_of_year,
            day=rule.day_of_month,
        )
    elif isinstance(rule, DailyRule):
        candidate = anchor + timedelta(days=interval)
    else:
        return None

    if rule.end_date and candidate > rule.end_date:
        return None
    return candidate


class OccurrenceSequence:
    """Bounded run of occurrences starting at ``start`` (inclusive).

    Iterating again restarts from ``start``.
    """

    def __init__(self, rule: RecurrenceRule, start: datetime, max_count: int = DEFAULT_PREVIEW_COUNT) -> None:
        self.rule = rule
        self.start = start
        self.max_count = max_count

    def __iter__(self) -> Iterator[datetime]:
        current = self.start
        count = 0
        while count < self.max_count:
            if self.rule.occurrences and count >= self.rule.occurrences:
                return
            if self.rule.end_date and current > self.rule.end_date:
                return

            yield current
            count += 1

            following = next_occurrence(self.rule, current)
            if following is None or following <= current:
                return
            current = following


def occurrences(rule: RecurrenceRule, start: datetime, max_count: int = DEFAULT_PREVIEW_COUNT) -> OccurrenceSequence:
    return OccurrenceSequence(rule, start, max_count)


def preview(rule: RecurrenceRule, start: datetime, max_count: int = 10) -> RecurrencePreview:
    return RecurrencePreview(dates=list(occurrences(rule, start, max_count)), description=describe_rule(rule))


def sunday_weekday(value: date) -> int:
    """Weekday number with Sunday as 0."""
    return (value.weekday() + 1) % 7


def _next_weekly(anchor: datetime, days_of_week: tuple[int, ...], interval: int) -> datetime:
    days = sorted(day for day in days_of_week if 0 <= day <= 6)
    if not days:
        return anchor + timedelta(weeks=interval)

    current = sunday_weekday(anchor)
    later_this_week = next((day for day in days if day > current), None)
    if later_this_week is not None:
        return anchor + timedelta(days=later_this_week - current)

    # First selected day of the week `interval` weeks after the anchor's week.
    return anchor + timedelta(days=(7 - current + days[0]) + (interval - 1) * 7)


def _add_months(base: datetime, months: int, *, month: int | None = None, day: int | None = None) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    target_month = (base.month - 1 + months) % 12 + 1
    if month is not None and 1 <= month <= 12:
        target_month = month
    pinned = day if day is not None and day >= 1 else base.day
    target_day = min(pinned, _days_in_month(year, target_month))
    return base.replace(year=year, month=target_month, day=target_day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
