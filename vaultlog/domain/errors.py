"""Domain errors raised by VaultLog services.

The API layer turns these into responses using ``message``, ``error_code``
and ``details``; the service layer never builds HTTP payloads itself.
"""
from __future__ import annotations

from typing import Any, Iterable

from .enums import TaskStatus


class VaultLogError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(VaultLogError):
    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(VaultLogError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource.capitalize()} not found",
            "NOT_FOUND",
            {"resource": resource, "resourceId": resource_id},
        )


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        super().__init__("task", task_id)


class InvalidTransitionError(VaultLogError):
    """The requested status is not reachable from the current one.

    ``allowed`` lists the statuses that are, so a client can offer them instead.
    """

    status_code = 400

    def __init__(
        self,
        current: TaskStatus,
        requested: TaskStatus,
        allowed: Iterable[TaskStatus],
    ) -> None:
        self.current = current
        self.requested = requested
        self.allowed = tuple(allowed)
        super().__init__(
            "Invalid status transition",
            "INVALID_TRANSITION",
            {
                "current": current.value,
                "requested": requested.value,
                "allowedTransitions": [status.value for status in self.allowed],
            },
        )


class WipLimitExceededError(VaultLogError):
    """Destination status is at capacity. Retrying later may succeed."""

    status_code = 409

    def __init__(self, status: TaskStatus, limit: int, current: int) -> None:
        self.status = status
        self.limit = limit
        self.current = current
        super().__init__(
            "WIP limit reached for status",
            "WIP_LIMIT_EXCEEDED",
            {"status": status.value, "limit": limit, "current": current},
        )


class PersistenceError(VaultLogError):
    status_code = 500

    def __init__(self, message: str = "Failed to persist changes") -> None:
        super().__init__(message, "PERSISTENCE_ERROR")
