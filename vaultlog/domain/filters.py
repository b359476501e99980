from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import TaskStatus


@dataclass(frozen=True)
class TaskFilters:
    status: Optional[TaskStatus] = None
    client_id: str | None = None
    assigned_to_id: str | None = None
    search: str | None = None
