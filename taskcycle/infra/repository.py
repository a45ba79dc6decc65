from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from taskcycle.domain.entities import TaskEntity
from taskcycle.domain.enums import PriorityLevel
from taskcycle.domain.filters import InstanceFilter

from .models import TaskModel


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        description=model.description,
        priority=PriorityLevel(model.priority),
        due_date=model.due_date,
        due_time=model.due_time,
        tags=model.tags,
        is_completed=model.is_completed,
        is_recurring=model.is_recurring,
        recurring_rule=model.recurring_rule,
        original_task_id=model.original_task_id,
        sort_order=model.sort_order,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
        occurrences_generated=model.occurrences_generated or 0,
    )


def _active_templates():
    return (
        TaskModel.is_recurring.is_(True),
        TaskModel.original_task_id.is_(None),
        TaskModel.is_completed.is_(False),
        TaskModel.recurring_rule.is_not(None),
    )


def _instance_conditions(filters: InstanceFilter) -> list:
    conditions = [TaskModel.original_task_id.is_not(None)]
    if filters.template_id is not None:
        conditions.append(TaskModel.original_task_id == filters.template_id)
    if filters.user_id is not None:
        conditions.append(TaskModel.user_id == filters.user_id)
    if filters.is_completed is not None:
        conditions.append(TaskModel.is_completed.is_(filters.is_completed))
    if filters.due_before is not None:
        conditions.append(TaskModel.due_date < filters.due_before)
    if filters.due_after is not None:
        conditions.append(TaskModel.due_date > filters.due_after)
    return conditions


class SqlTaskStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def create_task(self, data: dict[str, Any]) -> TaskEntity:
        with self._session_factory() as session:
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def create_instance(self, data: dict[str, Any]) -> TaskEntity:
        if data.get("original_task_id") is None:
            raise ValueError("An instance needs the id of its template")
        return self.create_task(data)

    def find_active_recurring_templates(self, user_id: str) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(TaskModel.user_id == user_id, *_active_templates())
                .order_by(TaskModel.sort_order.asc(), TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def count_active_templates(self, user_id: str) -> int:
        with self._session_factory() as session:
            return session.scalar(
                select(func.count())
                .select_from(TaskModel)
                .where(TaskModel.user_id == user_id, *_active_templates())
            ) or 0

    def list_users_with_active_recurring_templates(self) -> list[str]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel.user_id)
                .where(*_active_templates())
                .distinct()
                .order_by(TaskModel.user_id.asc())
            )
            return list(session.scalars(stmt))

    def find_instances(self, filters: InstanceFilter) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel).where(*_instance_conditions(filters))
            if filters.newest_first:
                stmt = stmt.order_by(TaskModel.due_date.desc(), TaskModel.id.desc())
            else:
                stmt = stmt.order_by(TaskModel.due_date.asc(), TaskModel.id.asc())
            if filters.limit is not None:
                stmt = stmt.limit(filters.limit)
            return [_to_entity(task) for task in session.scalars(stmt)]

    def count_instances(self, filters: InstanceFilter) -> int:
        with self._session_factory() as session:
            return session.scalar(
                select(func.count()).select_from(TaskModel).where(*_instance_conditions(filters))
            ) or 0

    def delete_instances(self, filters: InstanceFilter) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(TaskModel)
                .where(*_instance_conditions(filters))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0

    def record_generated(self, template_id: int, count: int) -> None:
        with self._session_factory() as session:
            session.execute(
                update(TaskModel)
                .where(TaskModel.id == template_id)
                .values(occurrences_generated=TaskModel.occurrences_generated + count)
                .execution_options(synchronize_session=False)
            )
            session.commit()
