from __future__ import annotations

import hashlib
import json
import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Iterator, Optional

from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vaultlog.domain.entities import (
    ActivityLogEntry,
    ClientEntity,
    SlaMetadata,
    TaskEntity,
    TimeLogEntity,
    UserEntity,
)
from vaultlog.domain.enums import (
    ActivityType,
    ClientStatus,
    TaskPriority,
    TaskStatus,
    UserRole,
)
from vaultlog.domain.errors import PersistenceError, ValidationError
from vaultlog.domain.filters import TaskFilters

from .db import SessionLocal
from .models import ActivityLogModel, ClientModel, TaskModel, TimeLogModel, UserModel

logger = logging.getLogger(__name__)

_STATUS_LOCKS: dict[str, threading.Lock] = {}
_STATUS_LOCKS_GUARD = threading.Lock()


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        client_id=model.client_id,
        title=model.title,
        description=model.description,
        category=model.category,
        status=TaskStatus(model.status),
        priority=TaskPriority(model.priority),
        assigned_to_id=model.assigned_to_id,
        created_by_id=model.created_by_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
    )


def _to_activity(model: ActivityLogModel) -> ActivityLogEntry:
    metadata = None
    if model.metadata_json:
        payload = json.loads(model.metadata_json)
        if "sla" in payload:
            metadata = SlaMetadata.from_dict(payload)
    return ActivityLogEntry(
        id=model.id,
        task_id=model.task_id,
        user_id=model.user_id,
        activity_type=ActivityType(model.activity_type),
        description=model.description,
        metadata=metadata,
        created_at=model.created_at,
    )


def _to_time_log(model: TimeLogModel) -> TimeLogEntity:
    return TimeLogEntity(
        id=model.id,
        task_id=model.task_id,
        staff_id=model.staff_id,
        duration=model.duration,
        billable=model.billable,
        description=model.description,
        logged_at=model.logged_at,
        created_at=model.created_at,
    )


def _to_client(model: ClientModel) -> ClientEntity:
    return ClientEntity(
        id=model.id,
        name=model.name,
        description=model.description,
        status=ClientStatus(model.status),
        created_at=model.created_at,
    )


def _to_user(model: UserModel) -> UserEntity:
    return UserEntity(
        id=model.id,
        email=model.email,
        name=model.name,
        role=UserRole(model.role),
        active=model.active,
        created_at=model.created_at,
    )


def _apply_filters(stmt, filters: TaskFilters) -> object:
    if filters.status:
        stmt = stmt.where(TaskModel.status == filters.status.value)
    if filters.client_id:
        stmt = stmt.where(TaskModel.client_id == filters.client_id)
    if filters.assigned_to_id:
        stmt = stmt.where(TaskModel.assigned_to_id == filters.assigned_to_id)

    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                TaskModel.title.ilike(pattern),
                TaskModel.description.ilike(pattern),
                TaskModel.category.ilike(pattern),
            )
        )

    return stmt


def _advisory_lock_key(status: str) -> int:
    """Stable 63-bit key for pg_advisory_xact_lock, one per task status."""
    raw = hashlib.sha256(f"vaultlog:task-status:{status}".encode()).digest()[:8]
    return int.from_bytes(raw, "big") % (2**63)


def _process_lock(status: str) -> threading.Lock:
    with _STATUS_LOCKS_GUARD:
        return _STATUS_LOCKS.setdefault(status, threading.Lock())


class TaskUnitOfWork:
    """Task and audit writes that commit or roll back together."""

    def __init__(self, session: Session, locks: ExitStack) -> None:
        self._session = session
        self._locks = locks
        self._locked: set[str] = set()

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        task = self._session.get(TaskModel, task_id, with_for_update=True)
        return _to_entity(task) if task else None

    def create_task(self, data: dict) -> TaskEntity:
        task = TaskModel(**data)
        self._session.add(task)
        self._session.flush()
        return _to_entity(task)

    def update_task(self, task_id: str, data: dict) -> Optional[TaskEntity]:
        task = self._session.get(TaskModel, task_id)
        if not task:
            return None
        for key, value in data.items():
            setattr(task, key, value)
        self._session.flush()
        return _to_entity(task)

    def lock_status(self, status: TaskStatus) -> None:
        """Serialize occupancy checks for one destination status until the unit of work ends."""
        if status.value in self._locked:
            return
        if self._session.get_bind().dialect.name == "postgresql":
            # released by postgres at commit/rollback
            self._session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": _advisory_lock_key(status.value)},
            )
        else:
            self._locks.enter_context(_process_lock(status.value))
        self._locked.add(status.value)

    def count_by_status(self, status: TaskStatus, exclude_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(TaskModel).where(TaskModel.status == status.value)
        if exclude_id is not None:
            stmt = stmt.where(TaskModel.id != exclude_id)
        return self._session.scalar(stmt) or 0

    def add_activity(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        model = ActivityLogModel(
            task_id=entry.task_id,
            user_id=entry.user_id,
            activity_type=entry.activity_type.value,
            description=entry.description,
            metadata_json=json.dumps(entry.metadata.to_dict()) if entry.metadata else None,
            created_at=entry.created_at,
        )
        self._session.add(model)
        self._session.flush()
        return _to_activity(model)

    def add_time_log(self, data: dict) -> TimeLogEntity:
        time_log = TimeLogModel(**data)
        self._session.add(time_log)
        self._session.flush()
        return _to_time_log(time_log)


class TaskRepository:
    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Iterator[TaskUnitOfWork]:
        # locks are released only after the session has committed or rolled back
        with ExitStack() as locks, self._session_factory() as session:
            try:
                yield TaskUnitOfWork(session, locks)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Task unit of work failed")
                raise PersistenceError() from exc
            except Exception:
                session.rollback()
                raise

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel)
            stmt = _apply_filters(stmt, filters)
            stmt = stmt.order_by(TaskModel.created_at.desc())
            return [_to_entity(task) for task in session.scalars(stmt)]

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def list_activity(self, task_id: str) -> list[ActivityLogEntry]:
        with self._session_factory() as session:
            stmt = (
                select(ActivityLogModel)
                .where(ActivityLogModel.task_id == task_id)
                .order_by(ActivityLogModel.created_at.asc())
            )
            return [_to_activity(entry) for entry in session.scalars(stmt)]

    def list_time_logs(self, task_id: str) -> list[TimeLogEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TimeLogModel)
                .where(TimeLogModel.task_id == task_id)
                .order_by(TimeLogModel.logged_at.asc())
            )
            return [_to_time_log(entry) for entry in session.scalars(stmt)]

    def get_stats(self) -> dict[str, int]:
        with self._session_factory() as session:
            rows = session.execute(
                select(TaskModel.status, func.count()).group_by(TaskModel.status)
            ).all()
            by_status = {status.value: 0 for status in TaskStatus}
            for status, count in rows:
                by_status[status] = count

            metadata_rows = session.scalars(
                select(ActivityLogModel.metadata_json).where(
                    ActivityLogModel.activity_type == ActivityType.STATUS_CHANGED.value,
                    ActivityLogModel.metadata_json.is_not(None),
                )
            ).all()
            breaches = sum(
                1 for raw in metadata_rows if json.loads(raw).get("sla", {}).get("breached")
            )

        stats = {"total": sum(by_status.values()), "sla_breaches": breaches}
        stats.update({status.lower(): count for status, count in by_status.items()})
        return stats


class ClientRepository:
    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def list_clients(self, status: ClientStatus | None = None) -> list[ClientEntity]:
        with self._session_factory() as session:
            stmt = select(ClientModel).order_by(ClientModel.name.asc())
            if status:
                stmt = stmt.where(ClientModel.status == status.value)
            return [_to_client(client) for client in session.scalars(stmt)]

    def get_client(self, client_id: str) -> Optional[ClientEntity]:
        with self._session_factory() as session:
            client = session.get(ClientModel, client_id)
            return _to_client(client) if client else None

    def create_client(self, data: dict) -> ClientEntity:
        with self._session_factory() as session:
            client = ClientModel(**data)
            session.add(client)
            session.commit()
            session.refresh(client)
            return _to_client(client)


class UserRepository:
    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def list_users(self) -> list[UserEntity]:
        with self._session_factory() as session:
            stmt = select(UserModel).order_by(UserModel.name.asc())
            return [_to_user(user) for user in session.scalars(stmt)]

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._session_factory() as session:
            user = session.get(UserModel, user_id)
            return _to_user(user) if user else None

    def create_user(self, data: dict) -> UserEntity:
        with self._session_factory() as session:
            user = UserModel(**data)
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ValidationError("Email already registered", field="email") from exc
            session.refresh(user)
            return _to_user(user)
