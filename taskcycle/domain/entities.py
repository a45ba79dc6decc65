from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import PriorityLevel


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    user_id: str
    title: str
    description: str
    priority: PriorityLevel
    due_date: Optional[datetime]
    due_time: Optional[datetime]
    tags: str
    is_completed: bool
    is_recurring: bool
    recurring_rule: str | None
    original_task_id: int | None
    sort_order: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]
    occurrences_generated: int = 0

    @property
    def is_template(self) -> bool:
        return self.is_recurring and self.original_task_id is None

    @property
    def is_instance(self) -> bool:
        return self.original_task_id is not None


@dataclass(frozen=True)
class RecurringTaskStats:
    total_recurring: int = 0
    total_instances: int = 0
    upcoming_instances: int = 0
    overdue_instances: int = 0


@dataclass(frozen=True)
class RecurrencePreview:
    dates: list[datetime] = field(default_factory=list)
    description: str = ""

    @property
    def count(self) -> int:
        return len(self.dates)


@dataclass(frozen=True)
class GenerationReport:
    generated: int
    cleaned: int
    execution_time_ms: int
    finished_at: datetime
