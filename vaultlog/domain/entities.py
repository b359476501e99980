from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .enums import ActivityType, ClientStatus, SlaType, TaskPriority, TaskStatus, UserRole


@dataclass(frozen=True)
class TaskEntity:
    id: str
    client_id: str
    title: str
    description: str | None
    category: str
    status: TaskStatus
    priority: TaskPriority
    assigned_to_id: str | None
    created_by_id: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]


@dataclass(frozen=True)
class SlaMetadata:
    """SLA compliance snapshot attached to a STATUS_CHANGED entry."""

    type: SlaType
    target_hours: float
    actual_hours: float
    breached: bool

    def to_dict(self) -> dict:
        return {
            "sla": {
                "type": self.type.value,
                "targetHours": self.target_hours,
                "actualHours": self.actual_hours,
                "breached": self.breached,
            }
        }

    @classmethod
    def from_dict(cls, data: dict) -> SlaMetadata:
        sla = data["sla"]
        return cls(
            type=SlaType(sla["type"]),
            target_hours=sla["targetHours"],
            actual_hours=sla["actualHours"],
            breached=sla["breached"],
        )


@dataclass(frozen=True)
class ActivityLogEntry:
    id: str | None
    task_id: str | None
    user_id: str
    activity_type: ActivityType
    description: str
    metadata: SlaMetadata | None
    created_at: datetime


@dataclass(frozen=True)
class TimeLogEntity:
    id: str
    task_id: str
    staff_id: str
    duration: Decimal
    billable: bool
    description: str | None
    logged_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class ClientEntity:
    id: str
    name: str
    description: str | None
    status: ClientStatus
    created_at: datetime


@dataclass(frozen=True)
class UserEntity:
    id: str
    email: str
    name: str
    role: UserRole
    active: bool
    created_at: datetime
