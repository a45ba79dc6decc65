from __future__ import annotations

from typing import Any, Protocol

from .entities import TaskEntity
from .filters import InstanceFilter


class TaskStore(Protocol):
    """Persistence consumed by the materializer, cleaner and statistics."""

    def find_active_recurring_templates(self, user_id: str) -> list[TaskEntity]: ...

    def count_active_templates(self, user_id: str) -> int: ...

    def find_instances(self, filters: InstanceFilter) -> list[TaskEntity]: ...

    def count_instances(self, filters: InstanceFilter) -> int: ...

    def create_instance(self, data: dict[str, Any]) -> TaskEntity: ...

    def record_generated(self, template_id: int, count: int) -> None: ...

    def delete_instances(self, filters: InstanceFilter) -> int: ...

    def list_users_with_active_recurring_templates(self) -> list[str]: ...


class ThrottleStore(Protocol):
    """Key-value backend holding the last generation time per user."""

    def get(self, key: str) -> float | None: ...

    def set(self, key: str, value: float, ttl_seconds: int) -> None: ...
