"""Recurrence rules.

A rule is one of four frozen variants. Each variant only carries the fields
that mean something for its period, so stored text with stray keys (for
example ``daysOfWeek`` on a monthly rule) decodes into a clean value.

Stored text is a JSON object::

    {"type": "weekly", "interval": 2, "daysOfWeek": [1, 3],
     "endDate": "2026-12-31T00:00:00", "occurrences": 10}
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar, Union

from .enums import RecurrenceType
from .errors import RuleDecodeError

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class DailyRule:
    type: ClassVar[RecurrenceType] = RecurrenceType.DAILY

    interval: int = 1
    end_date: datetime | None = None
    occurrences: int | None = None


@dataclass(frozen=True)
class WeeklyRule:
    type: ClassVar[RecurrenceType] = RecurrenceType.WEEKLY

    interval: int = 1
    days_of_week: tuple[int, ...] = ()
    end_date: datetime | None = None
    occurrences: int | None = None


@dataclass(frozen=True)
class MonthlyRule:
    type: ClassVar[RecurrenceType] = RecurrenceType.MONTHLY

    interval: int = 1
    day_of_month: int | None = None
    end_date: datetime | None = None
    occurrences: int | None = None


@dataclass(frozen=True)
class YearlyRule:
    type: ClassVar[RecurrenceType] = RecurrenceType.YEARLY

    interval: int = 1
    month_of_year: int | None = None
    day_of_month: int | None = None
    end_date: datetime | None = None
    occurrences: int | None = None


RecurrenceRule = Union[DailyRule, WeeklyRule, MonthlyRule, YearlyRule]

RULE_TYPES: dict[str, type] = {
    RecurrenceType.DAILY.value: DailyRule,
    RecurrenceType.WEEKLY.value: WeeklyRule,
    RecurrenceType.MONTHLY.value: MonthlyRule,
    RecurrenceType.YEARLY.value: YearlyRule,
}


# ---- decoding ----

def _to_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise RuleDecodeError(f"{key} must be an integer, got {value!r}")
    try:
        number = float(value)
    except ValueError as exc:
        raise RuleDecodeError(f"{key} must be an integer, got {value!r}") from exc
    if not number.is_integer():
        raise RuleDecodeError(f"{key} must be an integer, got {value!r}")
    return int(number)


def _parse_end_date(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise RuleDecodeError(f"endDate must be an ISO date string, got {value!r}")
    raw = value.strip()
    try:
        if len(raw) == 10:
            # A bare date bounds the whole day.
            return datetime.combine(date.fromisoformat(raw), time.max)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise RuleDecodeError(f"endDate is not a valid ISO date: {value!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_days_of_week(value: Any) -> tuple[int, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise RuleDecodeError(f"daysOfWeek must be a list, got {value!r}")
    days = [_to_int({"daysOfWeek": item}, "daysOfWeek") for item in value]
    return tuple(sorted({day for day in days if day is not None}))


def rule_from_dict(data: Any) -> RecurrenceRule:
    if not isinstance(data, dict):
        raise RuleDecodeError(f"Recurrence rule must be an object, got {type(data).__name__}")

    rule_type = data.get("type")
    if not rule_type:
        raise RuleDecodeError("Recurrence rule has no type")
    if not isinstance(rule_type, str) or rule_type not in RULE_TYPES:
        raise RuleDecodeError(f"Unknown recurrence type {rule_type!r}")

    interval = _to_int(data, "interval")
    common = {
        "interval": 1 if interval is None else interval,
        "end_date": _parse_end_date(data.get("endDate")),
        "occurrences": _to_int(data, "occurrences"),
    }

    if rule_type == RecurrenceType.WEEKLY:
        return WeeklyRule(days_of_week=_parse_days_of_week(data.get("daysOfWeek")), **common)
    if rule_type == RecurrenceType.MONTHLY:
        return MonthlyRule(day_of_month=_to_int(data, "dayOfMonth"), **common)
    if rule_type == RecurrenceType.YEARLY:
        return YearlyRule(
            month_of_year=_to_int(data, "monthOfYear"),
            day_of_month=_to_int(data, "dayOfMonth"),
            **common,
        )
    return DailyRule(**common)


def rule_from_text(text: str | None) -> RecurrenceRule:
    if not text or not text.strip():
        raise RuleDecodeError("Recurrence rule text is empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RuleDecodeError(f"Recurrence rule is not valid JSON: {exc.msg}") from exc
    return rule_from_dict(data)


# ---- encoding ----

def rule_to_dict(rule: RecurrenceRule) -> dict[str, Any]:
    data: dict[str, Any] = {"type": rule.type.value, "interval": rule.interval}
    if isinstance(rule, WeeklyRule) and rule.days_of_week:
        data["daysOfWeek"] = list(rule.days_of_week)
    if isinstance(rule, YearlyRule) and rule.month_of_year is not None:
        data["monthOfYear"] = rule.month_of_year
    if isinstance(rule, (MonthlyRule, YearlyRule)) and rule.day_of_month is not None:
        data["dayOfMonth"] = rule.day_of_month
    if rule.end_date is not None:
        data["endDate"] = rule.end_date.isoformat()
    if rule.occurrences is not None:
        data["occurrences"] = rule.occurrences
    return data


def rule_to_text(rule: RecurrenceRule) -> str:
    return json.dumps(rule_to_dict(rule))


# ---- validation / description ----

def validate_rule(rule: RecurrenceRule, now: datetime | None = None) -> list[str]:
    """Return a list of problems with ``rule``; empty when the rule is usable."""
    errors: list[str] = []

    if not isinstance(rule, tuple(RULE_TYPES.values())):
        return ["Recurrence type is required"]

    if rule.interval < 1:
        errors.append("Interval must be a positive integer")

    if isinstance(rule, WeeklyRule) and any(day < 0 or day > 6 for day in rule.days_of_week):
        errors.append("Days of week must be between 0 and 6")

    if isinstance(rule, (MonthlyRule, YearlyRule)) and rule.day_of_month is not None:
        if not 1 <= rule.day_of_month <= 31:
            errors.append("Day of month must be between 1 and 31")

    if isinstance(rule, YearlyRule) and rule.month_of_year is not None:
        if not 1 <= rule.month_of_year <= 12:
            errors.append("Month of year must be between 1 and 12")

    if rule.occurrences is not None and rule.occurrences < 1:
        errors.append("Occurrences must be a positive integer")

    if rule.end_date is not None:
        reference = now or datetime.now(timezone.utc).replace(tzinfo=None)
        if rule.end_date < reference:
            errors.append("End date cannot be in the past")

    return errors


def _every(interval: int, unit: str) -> str:
    return f"Every {unit}" if interval == 1 else f"Every {interval} {unit}s"


def describe_rule(rule: RecurrenceRule) -> str:
    if isinstance(rule, WeeklyRule):
        text = _every(rule.interval, "week")
        if rule.days_of_week:
            names = ", ".join(DAY_NAMES[day] for day in rule.days_of_week if 0 <= day <= 6)
            text += f" on {names}"
    elif isinstance(rule, MonthlyRule):
        text = _every(rule.interval, "month")
        if rule.day_of_month:
            text += f" on day {rule.day_of_month}"
    elif isinstance(rule, YearlyRule):
        text = _every(rule.interval, "year")
        month = MONTH_NAMES[rule.month_of_year - 1] if rule.month_of_year and 1 <= rule.month_of_year <= 12 else None
        if month and rule.day_of_month:
            text += f" on {month} {rule.day_of_month}"
        elif month:
            text += f" in {month}"
    else:
        text = "Every day" if rule.interval == 1 else f"Every {rule.interval} days"

    if rule.occurrences:
        text += f", {rule.occurrences} times"
    if rule.end_date:
        text += f", until {rule.end_date.date().isoformat()}"
    return text
