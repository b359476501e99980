"""Task workflow rules: allowed status transitions, WIP ceilings and SLA targets.

Everything here is pure. A ``WorkflowRuleSet`` is built once and handed to the
services that need it; nothing mutates it afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from .enums import TaskPriority, TaskStatus

SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class SlaTargets:
    time_to_start: float
    time_to_complete: float


@dataclass(frozen=True)
class WorkflowRuleSet:
    allowed_transitions: Mapping[TaskStatus, tuple[TaskStatus, ...]]
    wip_limits: Mapping[TaskStatus, int]
    default_sla: SlaTargets
    sla_by_priority: Mapping[TaskPriority, SlaTargets] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # read-only views so a shared rule set cannot be edited in place
        object.__setattr__(
            self,
            "allowed_transitions",
            MappingProxyType({k: tuple(v) for k, v in self.allowed_transitions.items()}),
        )
        object.__setattr__(self, "wip_limits", MappingProxyType(dict(self.wip_limits)))
        object.__setattr__(self, "sla_by_priority", MappingProxyType(dict(self.sla_by_priority)))

    def get_allowed_transitions(self, status: TaskStatus) -> tuple[TaskStatus, ...]:
        return self.allowed_transitions.get(status, ())

    def is_transition_allowed(self, from_status: TaskStatus, to_status: TaskStatus) -> bool:
        """Self-transitions are never listed, so they are reported as not allowed."""
        return to_status in self.get_allowed_transitions(from_status)

    def get_wip_limit(self, status: TaskStatus) -> int | None:
        return self.wip_limits.get(status)

    def get_sla_targets(self, priority: TaskPriority | str) -> SlaTargets:
        return self.sla_by_priority.get(priority, self.default_sla)

    def to_dict(self) -> dict:
        return {
            "allowedTransitions": {
                status.value: [target.value for target in targets]
                for status, targets in self.allowed_transitions.items()
            },
            "wipLimits": {status.value: limit for status, limit in self.wip_limits.items()},
            "slaTargetsHours": {
                "default": _targets_to_dict(self.default_sla),
                "byPriority": {
                    priority.value: _targets_to_dict(targets)
                    for priority, targets in self.sla_by_priority.items()
                },
            },
        }


def hours_between(start: datetime, end: datetime) -> float:
    """Wall-clock hours from start to end. Negative when end precedes start."""
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def _targets_to_dict(targets: SlaTargets) -> dict[str, float]:
    return {"timeToStart": targets.time_to_start, "timeToComplete": targets.time_to_complete}


DEFAULT_WORKFLOW_RULES = WorkflowRuleSet(
    allowed_transitions={
        TaskStatus.NEW: (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.COMPLETED),
        TaskStatus.IN_PROGRESS: (TaskStatus.BLOCKED, TaskStatus.COMPLETED),
        TaskStatus.BLOCKED: (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
        TaskStatus.COMPLETED: (TaskStatus.IN_PROGRESS, TaskStatus.ARCHIVED),
        TaskStatus.ARCHIVED: (),
    },
    wip_limits={
        TaskStatus.IN_PROGRESS: 12,
        TaskStatus.BLOCKED: 6,
    },
    default_sla=SlaTargets(time_to_start=24, time_to_complete=72),
    sla_by_priority={
        TaskPriority.URGENT: SlaTargets(time_to_start=4, time_to_complete=24),
        TaskPriority.HIGH: SlaTargets(time_to_start=8, time_to_complete=48),
        TaskPriority.MEDIUM: SlaTargets(time_to_start=24, time_to_complete=72),
        TaskPriority.LOW: SlaTargets(time_to_start=48, time_to_complete=120),
    },
)
