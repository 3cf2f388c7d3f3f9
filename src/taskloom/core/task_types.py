"""Records for scheduled tasks and their execution results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .schedule_types import Schedule, schedule_to_dict


class TaskValidationError(ValueError):
    """Raised when task input is rejected; nothing is stored."""


class TaskNotFoundError(LookupError):
    """Raised when a task id does not exist in the store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task `{task_id}` not found.")
        self.task_id = task_id


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


@dataclass(slots=True)
class ScheduledTask:
    """A recurring agent invocation owned by the task store."""

    id: str
    name: str
    agent_id: str
    prompt_template: str
    schedule: Schedule
    enabled: bool
    created_at: datetime
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0

    def is_due(self, now: datetime) -> bool:
        return self.enabled and self.next_run is not None and self.next_run <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "agent_id": self.agent_id,
            "prompt_template": self.prompt_template,
            "schedule_type": schedule_to_dict(self.schedule),
            "enabled": self.enabled,
            "created_at": iso_or_none(self.created_at),
            "last_run": iso_or_none(self.last_run),
            "next_run": iso_or_none(self.next_run),
            "run_count": self.run_count,
        }


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of one task execution.

    `task_name` and `agent_name` are copied at execution time so the record
    stays readable after the task or agent is removed.
    """

    task_id: str
    task_name: str
    agent_name: str
    executed_at: datetime
    prompt: str
    success: bool
    response: str | None = None
    error: str | None = None
    duration_ms: int | None = None

    def __post_init__(self) -> None:
        if self.success and self.response is None:
            raise ValueError("TaskResult.response is required when success=True.")
        if not self.success and not self.error:
            raise ValueError("TaskResult.error is required when success=False.")
        if self.success and self.error is not None:
            raise ValueError("TaskResult.error must be empty when success=True.")
        if not self.success and self.response is not None:
            raise ValueError("TaskResult.response must be empty when success=False.")

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "agent_name": self.agent_name,
            "executed_at": iso_or_none(self.executed_at),
            "prompt": self.prompt,
            "response": self.response,
            "success": self.success,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }
