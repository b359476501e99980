from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable

from vaultlog.domain.entities import ActivityLogEntry, SlaMetadata, TaskEntity, TimeLogEntity
from vaultlog.domain.enums import ActivityType, SlaType, TaskPriority, TaskStatus
from vaultlog.domain.errors import (
    InvalidTransitionError,
    TaskNotFoundError,
    ValidationError,
    WipLimitExceededError,
)
from vaultlog.domain.filters import TaskFilters
from vaultlog.domain.workflow import DEFAULT_WORKFLOW_RULES, WorkflowRuleSet, hours_between
from vaultlog.infra.models import utcnow
from vaultlog.infra.repository import TaskRepository, TaskUnitOfWork

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

UPDATABLE_FIELDS = ("status", "priority", "assigned_to_id", "description")


class TaskService:
    def __init__(
        self,
        repo: TaskRepository,
        rules: WorkflowRuleSet = DEFAULT_WORKFLOW_RULES,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repo
        self._rules = rules
        self._clock = clock

    def get_workflow_rules(self) -> dict:
        return self._rules.to_dict()

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        return self._repo.list_tasks(filters)

    def get_task(self, task_id: str) -> TaskEntity:
        task = self._repo.get_task(task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    def list_activity(self, task_id: str) -> list[ActivityLogEntry]:
        self.get_task(task_id)
        return self._repo.list_activity(task_id)

    def list_time_logs(self, task_id: str) -> list[TimeLogEntity]:
        self.get_task(task_id)
        return self._repo.list_time_logs(task_id)

    def get_stats(self) -> dict[str, int]:
        return self._repo.get_stats()

    def create_task(self, data: dict, actor_id: str) -> TaskEntity:
        for required in ("client_id", "title", "category"):
            if not (data.get(required) or "").strip():
                raise ValidationError(f"{required} is required", field=required)

        now = self._clock()
        priority = _coerce(TaskPriority, data.get("priority") or TaskPriority.MEDIUM, "priority")
        with self._repo.unit_of_work() as uow:
            task = uow.create_task({
                "client_id": data["client_id"],
                "title": data["title"].strip(),
                "description": data.get("description"),
                "category": data["category"].strip(),
                "priority": priority.value,
                "status": TaskStatus.NEW.value,
                "assigned_to_id": data.get("assigned_to_id") or None,
                "created_by_id": actor_id,
                "created_at": now,
                "updated_at": now,
            })
            self._log(
                uow, task.id, actor_id, ActivityType.TASK_CREATED, f"Task created: {task.title}", now
            )
        logger.info("Task %s created by %s", task.id, actor_id)
        return task

    def update_task(self, task_id: str, data: dict, actor_id: str) -> TaskEntity:
        """Apply a partial update, enforcing the workflow rules on any status change.

        The status write, timestamps and every resulting audit entry are committed
        in one unit of work. Requesting the task's current status is a no-op for
        the status field and produces no STATUS_CHANGED entry.

        Raises:
            ValidationError: no updatable fields, or unknown enum values.
            TaskNotFoundError: task_id does not exist.
            InvalidTransitionError: the status change is not in the transition table.
            WipLimitExceededError: the destination status is at its WIP ceiling.
        """
        changes = self._normalize_data(data)
        if not changes:
            raise ValidationError("No fields to update")

        with self._repo.unit_of_work() as uow:
            current = uow.get_task(task_id)
            if not current:
                raise TaskNotFoundError(task_id)

            now = self._clock()
            update: dict = {"updated_at": now}
            new_status = changes.get("status")
            status_changed = new_status is not None and new_status != current.status

            if status_changed:
                self._check_transition(uow, current, new_status)
                update["status"] = new_status.value
                if new_status == TaskStatus.COMPLETED:
                    update["completed_at"] = now
                if current.status == TaskStatus.COMPLETED:
                    update["completed_at"] = None

            if changes.get("priority") is not None:
                update["priority"] = changes["priority"].value
            if "description" in changes:
                update["description"] = changes["description"]
            if "assigned_to_id" in changes:
                update["assigned_to_id"] = changes["assigned_to_id"]

            task = uow.update_task(task_id, update)
            if not task:
                raise TaskNotFoundError(task_id)

            if status_changed:
                self._log(
                    uow,
                    task_id,
                    actor_id,
                    ActivityType.STATUS_CHANGED,
                    f"Status changed from {current.status.value} to {new_status.value}",
                    now,
                    metadata=self._evaluate_sla(task, new_status, now),
                )
            if task.priority != current.priority:
                self._log(
                    uow,
                    task_id,
                    actor_id,
                    ActivityType.TASK_UPDATED,
                    f"Priority changed from {current.priority.value} to {task.priority.value}",
                    now,
                )
            if task.assigned_to_id != current.assigned_to_id:
                self._log(uow, task_id, actor_id, ActivityType.TASK_ASSIGNED, "Task reassigned", now)

        if status_changed:
            logger.info(
                "Task %s moved %s -> %s by %s", task_id, current.status.value, new_status.value, actor_id
            )
        return task

    def log_time(self, data: dict, actor_id: str) -> TimeLogEntity:
        task_id = data.get("task_id")
        if not task_id:
            raise ValidationError("task_id is required", field="task_id")
        try:
            duration = Decimal(str(data.get("duration")))
        except InvalidOperation as exc:
            raise ValidationError("duration must be a number", field="duration") from exc
        if not duration.is_finite() or duration <= 0:
            raise ValidationError("duration must be positive", field="duration")

        now = self._clock()
        with self._repo.unit_of_work() as uow:
            if not uow.get_task(task_id):
                raise TaskNotFoundError(task_id)
            time_log = uow.add_time_log({
                "task_id": task_id,
                "staff_id": actor_id,
                "duration": duration,
                "billable": data.get("billable") is not False,
                "description": data.get("description"),
                "logged_at": now,
                "created_at": now,
            })
            self._log(uow, task_id, actor_id, ActivityType.TIME_LOGGED, f"Logged {duration} hours", now)
        return time_log

    def _check_transition(self, uow: TaskUnitOfWork, task: TaskEntity, target: TaskStatus) -> None:
        if not self._rules.is_transition_allowed(task.status, target):
            logger.info("Rejected transition %s -> %s for task %s", task.status.value, target.value, task.id)
            raise InvalidTransitionError(
                task.status, target, self._rules.get_allowed_transitions(task.status)
            )

        limit = self._rules.get_wip_limit(target)
        if limit is None:
            return
        uow.lock_status(target)
        occupancy = uow.count_by_status(target, exclude_id=task.id)
        if occupancy >= limit:
            logger.info("WIP limit %s reached for %s (task %s)", limit, target.value, task.id)
            raise WipLimitExceededError(target, limit, occupancy)

    def _evaluate_sla(self, task: TaskEntity, status: TaskStatus, now: datetime) -> SlaMetadata | None:
        targets = self._rules.get_sla_targets(task.priority)
        if status == TaskStatus.IN_PROGRESS:
            sla_type, target_hours = SlaType.TIME_TO_START, targets.time_to_start
        elif status == TaskStatus.COMPLETED:
            sla_type, target_hours = SlaType.TIME_TO_COMPLETE, targets.time_to_complete
        else:
            return None

        # measured from creation, not from the last time the task became active
        actual_hours = hours_between(task.created_at, now)
        return SlaMetadata(
            type=sla_type,
            target_hours=target_hours,
            actual_hours=round(actual_hours, 2),
            breached=actual_hours > target_hours,
        )

    @staticmethod
    def _log(
        uow: TaskUnitOfWork,
        task_id: str,
        actor_id: str,
        activity_type: ActivityType,
        description: str,
        now: datetime,
        metadata: SlaMetadata | None = None,
    ) -> None:
        uow.add_activity(
            ActivityLogEntry(
                id=None,
                task_id=task_id,
                user_id=actor_id,
                activity_type=activity_type,
                description=description,
                metadata=metadata,
                created_at=now,
            )
        )

    def _normalize_data(self, data: dict) -> dict:
        normalized = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
        if normalized.get("status") is not None:
            normalized["status"] = _coerce(TaskStatus, normalized["status"], "status")
        if normalized.get("priority") is not None:
            normalized["priority"] = _coerce(TaskPriority, normalized["priority"], "priority")
        if "assigned_to_id" in normalized:
            normalized["assigned_to_id"] = normalized["assigned_to_id"] or None
        return {
            key: value
            for key, value in normalized.items()
            if value is not None or key in ("assigned_to_id", "description")
        }


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: {value}", field=field) from exc
