"""Execution pipeline for one scheduled task occurrence."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from threading import Thread
from time import monotonic
from typing import Any, Protocol

from .agent_registry import AgentRegistry
from .recurrence import DEFAULT_TIMEZONE, as_utc, resolve_zone
from .task_types import ScheduledTask, TaskResult

DEFAULT_EXECUTION_TIMEOUT_SEC = 300

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


class Invoker(Protocol):
    def invoke(self, agent_id: str, prompt: str) -> dict[str, Any]: ...


def render_prompt(template: str, now: datetime, *, timezone_name: str | None = DEFAULT_TIMEZONE) -> str:
    """Fill `{date}`, `{time}` and `{datetime}` with `now` in the scheduler timezone."""
    local = as_utc(now).astimezone(resolve_zone(timezone_name))
    return (
        template.replace("{datetime}", local.strftime(DATETIME_FORMAT))
        .replace("{date}", local.strftime(DATE_FORMAT))
        .replace("{time}", local.strftime(TIME_FORMAT))
    )


def _call_with_timeout(invoker: Invoker, agent_id: str, prompt: str, timeout_sec: float) -> dict[str, Any]:
    outcome: dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome["response"] = invoker.invoke(agent_id, prompt)
        except Exception as exc:
            outcome["exception"] = exc

    worker = Thread(target=_target, daemon=True, name=f"taskloom-invoke-{agent_id}")
    worker.start()
    worker.join(timeout=timeout_sec)
    if worker.is_alive():
        # The call keeps running detached; the task's slot is freed regardless.
        raise TimeoutError(f"Agent call timed out after {timeout_sec:g}s.")
    if "exception" in outcome:
        raise outcome["exception"]
    return outcome.get("response") or {}


class TaskExecutor:
    """Expand a task prompt, invoke its agent, and always return a TaskResult."""

    def __init__(
        self,
        *,
        invoker: Invoker,
        registry: AgentRegistry,
        timezone_name: str = DEFAULT_TIMEZONE,
        timeout_sec: float = DEFAULT_EXECUTION_TIMEOUT_SEC,
    ) -> None:
        self._invoker = invoker
        self._registry = registry
        self.timezone_name = timezone_name
        self.timeout_sec = timeout_sec

    def execute(self, task: ScheduledTask, *, now: datetime | None = None) -> TaskResult:
        executed_at = as_utc(now) if isinstance(now, datetime) else datetime.now(tz=UTC)
        agent_name = self._registry.resolve(task.agent_id) or task.agent_id
        prompt = render_prompt(task.prompt_template, executed_at, timezone_name=self.timezone_name)

        started = monotonic()
        error: str | None = None
        text: str | None = None
        try:
            response = _call_with_timeout(self._invoker, task.agent_id, prompt, float(self.timeout_sec))
            if not isinstance(response, dict):
                error = "Agent invoker returned a malformed response."
            elif not response.get("ok"):
                error = str(response.get("error") or "Agent invocation failed.")
            elif not isinstance(response.get("text"), str):
                error = "Agent response did not include text."
            else:
                text = response["text"]
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning("Task %s execution failed: %s", task.id, error)
        duration_ms = int((monotonic() - started) * 1000)

        if error is not None:
            return TaskResult(
                task_id=task.id,
                task_name=task.name,
                agent_name=agent_name,
                executed_at=executed_at,
                prompt=prompt,
                success=False,
                error=error,
                duration_ms=duration_ms,
            )
        return TaskResult(
            task_id=task.id,
            task_name=task.name,
            agent_name=agent_name,
            executed_at=executed_at,
            prompt=prompt,
            success=True,
            response=text,
            duration_ms=duration_ms,
        )
