from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

import pytest

from taskcycle.domain.entities import TaskEntity
from taskcycle.domain.enums import PriorityLevel
from taskcycle.domain.filters import InstanceFilter
from taskcycle.domain.rules import RecurrenceRule, rule_to_text
from taskcycle.services.cleanup import ExpirationCleaner
from taskcycle.services.materializer import InstanceMaterializer

# Wednesday
NOW = datetime(2026, 3, 4, 10, 0)


class FakeTaskStore:
    def __init__(self) -> None:
        self.tasks: list[TaskEntity] = []
        self._id = 1
        self.failing_templates: set[int] = set()
        self.failing_users: set[str] = set()

    def create_task(self, data: dict[str, Any]) -> TaskEntity:
        task = TaskEntity(
            id=self._id,
            user_id=data.get("user_id", "user-1"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=PriorityLevel(data.get("priority", 2)),
            due_date=data.get("due_date"),
            due_time=data.get("due_time"),
            tags=data.get("tags", ""),
            is_completed=data.get("is_completed", False),
            is_recurring=data.get("is_recurring", False),
            recurring_rule=data.get("recurring_rule"),
            original_task_id=data.get("original_task_id"),
            sort_order=data.get("sort_order", 0),
            created_at=NOW,
            updated_at=NOW,
            completed_at=None,
            occurrences_generated=data.get("occurrences_generated", 0),
        )
        self.tasks.append(task)
        self._id += 1
        return task

    def create_instance(self, data: dict[str, Any]) -> TaskEntity:
        if data["original_task_id"] in self.failing_templates:
            raise RuntimeError("store unavailable")
        return self.create_task(data)

    def complete_task(self, task_id: int) -> None:
        self.tasks = [replace(t, is_completed=True) if t.id == task_id else t for t in self.tasks]

    def record_generated(self, template_id: int, count: int) -> None:
        self.tasks = [
            replace(t, occurrences_generated=t.occurrences_generated + count) if t.id == template_id else t
            for t in self.tasks
        ]

    def template(self, template_id: int) -> TaskEntity:
        return next(t for t in self.tasks if t.id == template_id)

    def find_active_recurring_templates(self, user_id: str) -> list[TaskEntity]:
        if user_id in self.failing_users:
            raise RuntimeError("store unavailable")
        return [
            t for t in self.tasks
            if t.user_id == user_id and t.is_template and not t.is_completed and t.recurring_rule
        ]

    def count_active_templates(self, user_id: str) -> int:
        return len(self.find_active_recurring_templates(user_id))

    def list_users_with_active_recurring_templates(self) -> list[str]:
        return sorted({
            t.user_id for t in self.tasks if t.is_template and not t.is_completed and t.recurring_rule
        })

    @staticmethod
    def _matches(task: TaskEntity, filters: InstanceFilter) -> bool:
        if task.original_task_id is None:
            return False
        if filters.template_id is not None and task.original_task_id != filters.template_id:
            return False
        if filters.user_id is not None and task.user_id != filters.user_id:
            return False
        if filters.is_completed is not None and task.is_completed != filters.is_completed:
            return False
        if filters.due_before is not None and not (task.due_date and task.due_date < filters.due_before):
            return False
        if filters.due_after is not None and not (task.due_date and task.due_date > filters.due_after):
            return False
        return True

    def find_instances(self, filters: InstanceFilter) -> list[TaskEntity]:
        found = [t for t in self.tasks if self._matches(t, filters)]
        found.sort(key=lambda t: t.due_date or datetime.min, reverse=filters.newest_first)
        if filters.limit is not None:
            found = found[:filters.limit]
        return found

    def count_instances(self, filters: InstanceFilter) -> int:
        return len(self.find_instances(filters))

    def delete_instances(self, filters: InstanceFilter) -> int:
        doomed = {t.id for t in self.tasks if self._matches(t, filters)}
        self.tasks = [t for t in self.tasks if t.id not in doomed]
        return len(doomed)

    def instances_of(self, template_id: int) -> list[TaskEntity]:
        return self.find_instances(InstanceFilter(template_id=template_id))


@pytest.fixture()
def store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture()
def materializer(store: FakeTaskStore, clock) -> InstanceMaterializer:
    return InstanceMaterializer(store, clock=clock)


@pytest.fixture()
def cleaner(store: FakeTaskStore, clock) -> ExpirationCleaner:
    return ExpirationCleaner(store, clock=clock)


@pytest.fixture()
def add_template(store: FakeTaskStore) -> Callable[..., TaskEntity]:
    def _add(rule: RecurrenceRule | str, *, user_id: str = "user-1", **fields: Any) -> TaskEntity:
        text = rule if isinstance(rule, str) else rule_to_text(rule)
        data = {
            "user_id": user_id,
            "title": "Water plants",
            "description": "Balcony and kitchen",
            "priority": 3,
            "tags": "home",
            "is_recurring": True,
            "recurring_rule": text,
        }
        data.update(fields)
        return store.create_task(data)

    return _add
