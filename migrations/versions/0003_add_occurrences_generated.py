"""count instances ever generated per recurring template"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_occurrences_generated"
down_revision = "0002_add_recurrence"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("occurrences_generated", sa.Integer(), nullable=False, server_default="0"),
    )
    # Existing templates start from the instances they already have.
    op.execute(
        """
        UPDATE tasks
        SET occurrences_generated = (
            SELECT COUNT(*) FROM tasks AS instances
            WHERE instances.original_task_id = tasks.id
        )
        WHERE original_task_id IS NULL AND is_recurring
        """
    )


def downgrade() -> None:
    op.drop_column("tasks", "occurrences_generated")
