from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from taskcycle.services.clock import utcnow

from .db import Base


class TaskModel(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_template_due", "original_task_id", "due_date"),
        Index("ix_tasks_user_recurring", "user_id", "is_recurring", "is_completed"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    priority = Column(Integer, nullable=False, default=2)
    due_date = Column(DateTime, nullable=True)
    due_time = Column(DateTime, nullable=True)
    tags = Column(Text, nullable=False, default="")
    is_completed = Column(Boolean, nullable=False, default=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_rule = Column(Text, nullable=True)
    original_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, nullable=True)
    occurrences_generated = Column(Integer, nullable=False, default=0)
