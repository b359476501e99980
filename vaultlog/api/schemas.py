"""Request and response bodies for the HTTP API."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from vaultlog.domain.entities import ActivityLogEntry
from vaultlog.domain.enums import (
    ActivityType,
    ClientStatus,
    TaskPriority,
    TaskStatus,
    UserRole,
)


class TaskCreateRequest(BaseModel):
    client_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    category: str = Field(..., min_length=1, max_length=100)
    priority: TaskPriority | None = None
    assigned_to_id: UUID | None = None


class TaskUpdateRequest(BaseModel):
    """Partial update. Only fields present in the body are applied."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to_id: UUID | None = None
    description: str | None = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    completed_at: datetime | None


class ActivityResponse(BaseModel):
    id: str | None
    task_id: str | None
    user_id: str
    activity_type: ActivityType
    description: str
    metadata: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: ActivityLogEntry) -> ActivityResponse:
        return cls(
            id=entry.id,
            task_id=entry.task_id,
            user_id=entry.user_id,
            activity_type=entry.activity_type,
            description=entry.description,
            metadata=entry.metadata.to_dict() if entry.metadata else None,
            created_at=entry.created_at,
        )


class TimeLogCreateRequest(BaseModel):
    task_id: UUID
    duration: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    billable: bool = True
    description: str | None = None


class TimeLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    staff_id: str
    duration: Decimal
    billable: bool
    description: str | None
    logged_at: datetime
    created_at: datetime


class TaskDetailResponse(TaskResponse):
    activity: list[ActivityResponse]
    time_logs: list[TimeLogResponse]


class ClientCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    status: ClientStatus = ClientStatus.ACTIVE


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    status: ClientStatus
    created_at: datetime


class UserCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.STAFF


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: UserRole
    active: bool
    created_at: datetime
