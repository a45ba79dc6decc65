"""add recurring templates and instances"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurrence"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.add_column("tasks", sa.Column("recurring_rule", sa.Text(), nullable=True))
    op.add_column(
        "tasks",
        sa.Column(
            "original_task_id",
            sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=True,
        ),
    )
    op.create_index("ix_tasks_template_due", "tasks", ["original_task_id", "due_date"], unique=False)
    op.create_index(
        "ix_tasks_user_recurring",
        "tasks",
        ["user_id", "is_recurring", "is_completed"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_tasks_user_recurring", table_name="tasks")
    op.drop_index("ix_tasks_template_due", table_name="tasks")
    op.drop_column("tasks", "original_task_id")
    op.drop_column("tasks", "recurring_rule")
    op.drop_column("tasks", "is_recurring")
