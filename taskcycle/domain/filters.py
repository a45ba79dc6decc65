from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class InstanceFilter:
    """Selects materialized instances (records with an owning template)."""

    template_id: int | None = None
    user_id: str | None = None
    is_completed: bool | None = None
    due_before: Optional[datetime] = None
    due_after: Optional[datetime] = None
    newest_first: bool = False
    limit: int | None = None
