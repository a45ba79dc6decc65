"""
Recurring instance materializer.

For every active template of a user:
- decode and validate the stored rule (bad rules are skipped, not fatal),
- resume from the newest open instance instead of the rule's origin,
- walk occurrences up to the horizon and persist the future ones once.

Instances are keyed by (template, occurrence date); a date that already has
an instance is never materialized again.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from taskcycle.domain.entities import RecurringTaskStats, TaskEntity
from taskcycle.domain.errors import RuleDecodeError
from taskcycle.domain.filters import InstanceFilter
from taskcycle.domain.ports import TaskStore
from taskcycle.domain.rules import RecurrenceRule, rule_from_text, validate_rule

from .clock import utcnow
from .occurrences import next_occurrence

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 30
MAX_ITERATIONS_PER_TEMPLATE = 365


class InstanceMaterializer:
    def __init__(self, store: TaskStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def materialize_all(self, horizon_days: int = DEFAULT_HORIZON_DAYS) -> int:
        users = self._store.list_users_with_active_recurring_templates()
        logger.info("Materializing recurring tasks for %s users horizon_days=%s", len(users), horizon_days)

        total = 0
        for user_id in users:
            try:
                generated = self.materialize_for_user(user_id, horizon_days)
            except Exception:
                logger.exception("materialize_for_user failed user=%s", user_id)
                continue
            total += generated
            logger.info("User %s: %s instances generated", user_id, generated)

        logger.info("Materialization finished total=%s", total)
        return total

    def materialize_for_user(self, user_id: str, horizon_days: int = DEFAULT_HORIZON_DAYS) -> int:
        now = self._clock()
        horizon_end = now + timedelta(days=horizon_days)

        total = 0
        for template in self._store.find_active_recurring_templates(user_id):
            try:
                total += self._materialize_template(template, now, horizon_end)
            except RuleDecodeError as exc:
                logger.warning("Template %s (%s) has an unreadable rule: %s", template.id, template.title, exc)
            except Exception:
                logger.exception("Failed to materialize template_id=%s", template.id)
        return total

    def ensure_user_tasks_generated(self, user_id: str) -> int:
        """Generate a default horizon for one user; failures are logged, not raised."""
        try:
            generated = self.materialize_for_user(user_id, DEFAULT_HORIZON_DAYS)
        except Exception:
            logger.exception("ensure_user_tasks_generated failed user=%s", user_id)
            return 0
        if generated:
            logger.info("Generated %s recurring instances for user=%s", generated, user_id)
        return generated

    def get_recurring_task_stats(self, user_id: str) -> RecurringTaskStats:
        now = self._clock()
        try:
            return RecurringTaskStats(
                total_recurring=self._store.count_active_templates(user_id),
                total_instances=self._store.count_instances(InstanceFilter(user_id=user_id)),
                upcoming_instances=self._store.count_instances(
                    InstanceFilter(user_id=user_id, is_completed=False, due_after=now)
                ),
                overdue_instances=self._store.count_instances(
                    InstanceFilter(user_id=user_id, is_completed=False, due_before=now)
                ),
            )
        except Exception:
            logger.exception("get_recurring_task_stats failed user=%s", user_id)
            return RecurringTaskStats()

    # ---- per template ----

    def _materialize_template(self, template: TaskEntity, now: datetime, horizon_end: datetime) -> int:
        rule = rule_from_text(template.recurring_rule)
        errors = validate_rule(rule, now)
        if errors:
            logger.warning("Template %s (%s) has an invalid rule: %s", template.id, template.title, "; ".join(errors))
            return 0

        existing = self._store.find_instances(InstanceFilter(template_id=template.id))
        anchor = self._resume_anchor(template, rule, now)
        if anchor is None:
            return 0

        remaining = None
        if rule.occurrences is not None:
            # Cleanup deletes overdue instances; the template's counter does not shrink.
            produced = max(template.occurrences_generated, len(existing))
            remaining = rule.occurrences - produced
            if remaining <= 0:
                return 0

        taken = {instance.due_date.date() for instance in existing if instance.due_date}
        dates = self._future_dates(rule, anchor, now, horizon_end, taken, remaining)
        created = 0
        try:
            for occurrence in dates:
                self._store.create_instance(self._instance_data(template, occurrence))
                created += 1
        finally:
            if created:
                self._store.record_generated(template.id, created)

        if created:
            logger.info("Template %s (%s): %s instances created", template.id, template.title, created)
        return created

    def _resume_anchor(self, template: TaskEntity, rule: RecurrenceRule, now: datetime) -> datetime | None:
        latest = self._store.find_instances(
            InstanceFilter(template_id=template.id, is_completed=False, newest_first=True, limit=1)
        )
        if latest and latest[0].due_date:
            # None here means the rule has no occurrence after the newest instance.
            return next_occurrence(rule, latest[0].due_date)
        return template.due_date or now

    @staticmethod
    def _future_dates(
            rule: RecurrenceRule,
            anchor: datetime,
            now: datetime,
            horizon_end: datetime,
            taken: set[date],
            remaining: int | None,
    ) -> list[datetime]:
        dates: list[datetime] = []
        current = anchor
        for _ in range(MAX_ITERATIONS_PER_TEMPLATE):
            if current > horizon_end:
                break
            if rule.end_date and current > rule.end_date:
                break
            if remaining is not None and len(dates) >= remaining:
                break

            if current > now and current.date() not in taken:
                dates.append(current)
                taken.add(current.date())

            following = next_occurrence(rule, current)
            if following is None or following <= current:
                break
            current = following
        return dates

    @staticmethod
    def _instance_data(template: TaskEntity, occurrence: datetime) -> dict[str, Any]:
        due_time = None
        if template.due_time:
            due_time = occurrence.replace(
                hour=template.due_time.hour,
                minute=template.due_time.minute,
                second=0,
                microsecond=0,
            )
        return {
            "user_id": template.user_id,
            "title": template.title,
            "description": template.description,
            "priority": int(template.priority),
            "tags": template.tags,
            "due_date": occurrence,
            "due_time": due_time,
            "is_completed": False,
            "is_recurring": False,
            "recurring_rule": None,
            "original_task_id": template.id,
            "sort_order": template.sort_order,
        }
