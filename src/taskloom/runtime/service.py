"""Shared runtime ownership facade for daemon/app entrypoints."""

from __future__ import annotations

from threading import RLock
from typing import Any

from src.taskloom.core.agent_invoker import AgentInvoker
from src.taskloom.core.scheduler_service import get_scheduler_service


class RuntimeService:
    """Single authority for runtime lifecycle + app-facing operations."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._started = False
        self._last_start_source: str | None = None
        self._last_stop_source: str | None = None

    def start(self, *, start_scheduler_if_enabled: bool = True, source: str = "runtime") -> dict[str, Any]:
        with self._lock:
            already_started = self._started
            self._started = True
            self._last_start_source = source

        scheduler_started = False
        if start_scheduler_if_enabled:
            status = self.scheduler_status()
            service = status.get("service") if isinstance(status, dict) else {}
            enabled = bool(service.get("enabled_in_config")) if isinstance(service, dict) else False
            running = bool(service.get("running")) if isinstance(service, dict) else False
            if enabled and not running:
                out = self.scheduler_start()
                scheduler_started = bool(out.get("ok")) and bool(out.get("running"))

        return {
            "ok": True,
            "source": "runtime_service",
            "already_started": already_started,
            "started": True,
            "start_source": source,
            "scheduler_started": scheduler_started,
        }

    def stop(self, *, stop_scheduler: bool = True, source: str = "runtime") -> dict[str, Any]:
        scheduler_stopped = False
        abandoned: list[str] = []
        if stop_scheduler:
            status = self.scheduler_status()
            service = status.get("service") if isinstance(status, dict) else {}
            running = bool(service.get("running")) if isinstance(service, dict) else False
            if running:
                out = self.scheduler_stop()
                scheduler_stopped = bool(out.get("ok"))
                abandoned = list(out.get("abandoned_task_ids") or [])

        with self._lock:
            self._started = False
            self._last_stop_source = source

        return {
            "ok": True,
            "source": "runtime_service",
            "stopped": True,
            "stop_source": source,
            "scheduler_stopped": scheduler_stopped,
            "abandoned_task_ids": abandoned,
        }

    def health(self) -> dict[str, Any]:
        status = self.scheduler_status()
        return {
            "ok": True,
            "source": "runtime_service",
            "runtime": {
                "started": self._started,
                "last_start_source": self._last_start_source,
                "last_stop_source": self._last_stop_source,
            },
            "scheduler": status.get("service") if isinstance(status, dict) else {},
        }

    def scheduler_status(self) -> dict[str, Any]:
        return get_scheduler_service().status()

    def scheduler_start(self) -> dict[str, Any]:
        return get_scheduler_service().start()

    def scheduler_stop(self) -> dict[str, Any]:
        return get_scheduler_service().stop()

    def create_task(self, *, name: str, agent_id: str, prompt_template: str, schedule_type: Any) -> dict[str, Any]:
        return get_scheduler_service().create_task(
            name=name,
            agent_id=agent_id,
            prompt_template=prompt_template,
            schedule_type=schedule_type,
        )

    def list_tasks(self) -> dict[str, Any]:
        return get_scheduler_service().list_tasks()

    def delete_task(self, *, task_id: str) -> dict[str, Any]:
        return get_scheduler_service().delete_task(task_id=task_id)

    def toggle_task(self, *, task_id: str, enabled: bool) -> dict[str, Any]:
        return get_scheduler_service().toggle_task(task_id=task_id, enabled=enabled)

    def get_task_results(self, *, limit: int = 50) -> dict[str, Any]:
        return get_scheduler_service().get_task_results(limit=limit)

    def run_task_now(self, *, task_id: str) -> dict[str, Any]:
        return get_scheduler_service().run_task_now(task_id=task_id)

    def list_agents(self) -> dict[str, Any]:
        return get_scheduler_service().list_agents()

    def check_backend(self) -> dict[str, Any]:
        return {"success": True, "data": {"reachable": AgentInvoker.backend_reachable()}, "error": None}

    def list_backend_models(self) -> dict[str, Any]:
        try:
            models = AgentInvoker.backend_models()
        except Exception as exc:
            return {"success": False, "data": None, "error": f"Failed to list models: {exc}", "error_type": "backend"}
        return {"success": True, "data": models, "error": None}


_RUNTIME_SERVICE: RuntimeService | None = None


def get_runtime_service() -> RuntimeService:
    global _RUNTIME_SERVICE
    if _RUNTIME_SERVICE is None:
        _RUNTIME_SERVICE = RuntimeService()
    return _RUNTIME_SERVICE
