"""Scheduler service: tick loop, per-task dispatch guard, and task commands."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from threading import Event, RLock, Thread
from time import monotonic
from typing import Any
from uuid import uuid4

from .agent_invoker import AgentInvoker
from .agent_registry import AgentRegistry
from .config_loader import get_scheduler_config, load_config_or_empty
from .recurrence import DEFAULT_TIMEZONE, as_utc, resolve_zone
from .result_history import DEFAULT_CAPACITY, ResultHistory
from .task_executor import DEFAULT_EXECUTION_TIMEOUT_SEC, Invoker, TaskExecutor
from .task_store import DEFAULT_DB_PATH, TaskStore, resolve_db_path
from .task_types import ScheduledTask, TaskNotFoundError, TaskValidationError

MAX_EVENTS = 500

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SchedulerSettings:
    enabled: bool = True
    poll_interval_sec: int = 30
    timezone: str = DEFAULT_TIMEZONE
    db_path: str = DEFAULT_DB_PATH
    result_history_max_rows: int = DEFAULT_CAPACITY
    execution_timeout_sec: int = DEFAULT_EXECUTION_TIMEOUT_SEC
    shutdown_grace_sec: int = 10


def _positive_int(raw: Any, default: int) -> int:
    return int(raw) if isinstance(raw, int) and not isinstance(raw, bool) and raw > 0 else default


def load_scheduler_settings(config: dict[str, Any] | None = None) -> SchedulerSettings:
    payload = config if config is not None else load_config_or_empty()
    section = get_scheduler_config(payload)

    timezone = section.get("timezone", DEFAULT_TIMEZONE)
    timezone = timezone.strip() if isinstance(timezone, str) and timezone.strip() else DEFAULT_TIMEZONE
    try:
        resolve_zone(timezone)
    except ValueError:
        logger.warning("Unknown scheduler timezone %r; using %s", timezone, DEFAULT_TIMEZONE)
        timezone = DEFAULT_TIMEZONE

    db_path = section.get("db_path", DEFAULT_DB_PATH)
    # Capped at one minute, the finest schedule unit.
    poll = min(60, _positive_int(section.get("poll_interval_sec"), 30))
    return SchedulerSettings(
        enabled=bool(section.get("enabled", True)),
        poll_interval_sec=poll,
        timezone=timezone,
        db_path=str(db_path) if isinstance(db_path, str) and db_path.strip() else DEFAULT_DB_PATH,
        result_history_max_rows=_positive_int(section.get("result_history_max_rows"), DEFAULT_CAPACITY),
        execution_timeout_sec=_positive_int(section.get("execution_timeout_sec"), DEFAULT_EXECUTION_TIMEOUT_SEC),
        shutdown_grace_sec=_positive_int(section.get("shutdown_grace_sec"), 10),
    )


def _ok(data: Any = None) -> dict[str, Any]:
    return {"success": True, "data": data, "error": None}


def _err(message: str, *, error_type: str) -> dict[str, Any]:
    return {"success": False, "data": None, "error": message, "error_type": error_type}


class SchedulerService:
    """Owns the task store, result history, executor, and the tick thread.

    At most one execution per task id is in flight at any time. Distinct
    tasks run concurrently on their own threads.
    """

    def __init__(
        self,
        *,
        settings: SchedulerSettings | None = None,
        registry: AgentRegistry | None = None,
        invoker: Invoker | None = None,
    ) -> None:
        # Explicit settings pin the service; otherwise config is re-read on every tick.
        self._follow_config = settings is None
        self._settings = settings or load_scheduler_settings()
        self._own_registry = registry is None
        self._registry = registry or AgentRegistry()
        self._store = TaskStore(
            db_path=self._settings.db_path,
            agent_registry=self._registry,
            timezone_name=self._settings.timezone,
        )
        self._history = ResultHistory(
            db_path=self._settings.db_path,
            capacity=self._settings.result_history_max_rows,
        )
        self._executor = TaskExecutor(
            invoker=invoker or AgentInvoker(registry=self._registry),
            registry=self._registry,
            timezone_name=self._settings.timezone,
            timeout_sec=self._settings.execution_timeout_sec,
        )
        self._lock = RLock()
        self._stop_event = Event()
        self._loop_thread: Thread | None = None
        self._in_flight: dict[str, Thread] = {}
        self._events: list[dict[str, Any]] = []
        self._last_tick_at: str | None = None

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def history(self) -> ResultHistory:
        return self._history

    @staticmethod
    def _utc_now() -> datetime:
        return datetime.now(tz=UTC)

    def _record_event(self, *, event_type: str, payload: dict[str, Any] | None = None) -> None:
        event = {
            "event_id": f"sevt_{uuid4().hex}",
            "type": event_type,
            "timestamp": self._utc_now().isoformat(),
            "payload": payload or {},
        }
        with self._lock:
            self._events.append(event)
            if len(self._events) > MAX_EVENTS:
                self._events = self._events[-MAX_EVENTS:]

    def recent_events(self, *, limit: int = 20) -> list[dict[str, Any]]:
        safe_limit = max(1, min(200, int(limit)))
        with self._lock:
            return [dict(event) for event in self._events[-safe_limit:]]

    def _refresh_settings(self) -> SchedulerSettings:
        if not self._follow_config:
            return self._settings
        settings = load_scheduler_settings()
        if self._own_registry:
            self._registry.reload()
        with self._lock:
            if str(resolve_db_path(settings.db_path)) != str(self._store.db_path):
                # The database cannot move while running; keep the one opened at startup.
                settings.db_path = self._settings.db_path
            self._settings = settings
            self._store.set_timezone(settings.timezone)
            self._executor.timezone_name = settings.timezone
            self._executor.timeout_sec = settings.execution_timeout_sec
        if self._history.capacity != settings.result_history_max_rows:
            self._history.set_capacity(settings.result_history_max_rows)
        return settings

    # ---- lifecycle ----

    def is_running(self) -> bool:
        with self._lock:
            return self._loop_thread is not None and self._loop_thread.is_alive()

    def start(self) -> dict[str, Any]:
        with self._lock:
            if self._loop_thread is not None and self._loop_thread.is_alive():
                return {"ok": True, "running": True, "already_running": True}
            self._stop_event.clear()
            self._loop_thread = Thread(target=self._run_loop, daemon=True, name="taskloom-scheduler")
            self._loop_thread.start()
        logger.info("Scheduler started (poll every %ss)", self._settings.poll_interval_sec)
        return {"ok": True, "running": True, "already_running": False}

    def stop(self, *, wait_for_in_flight: bool = True) -> dict[str, Any]:
        with self._lock:
            thread = self._loop_thread
            self._stop_event.set()
        if thread is not None and thread.is_alive():
            thread.join(timeout=2.0)
        with self._lock:
            self._loop_thread = None

        abandoned: list[str] = []
        if wait_for_in_flight:
            deadline = monotonic() + max(0, self._settings.shutdown_grace_sec)
            for task_id, worker in self._in_flight_snapshot().items():
                worker.join(timeout=max(0.0, deadline - monotonic()))
                if worker.is_alive():
                    abandoned.append(task_id)
        else:
            abandoned = sorted(self._in_flight_snapshot())
        if abandoned:
            logger.warning("Scheduler stopped with %d execution(s) still running: %s", len(abandoned), abandoned)
        else:
            logger.info("Scheduler stopped")
        return {"ok": True, "running": False, "abandoned_task_ids": abandoned}

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                logger.exception("Scheduler tick failed")
                self._record_event(event_type="tick_error", payload={"error": str(exc)[:300]})
            self._stop_event.wait(timeout=max(1, self._settings.poll_interval_sec))

    # ---- dispatch ----

    def _in_flight_snapshot(self) -> dict[str, Thread]:
        with self._lock:
            return dict(self._in_flight)

    def _try_dispatch(self, task: ScheduledTask, *, due_at: datetime | None = None) -> str:
        """Start an execution thread for `task`.

        Returns `dispatched`, `in_flight` when a run of this task is still going,
        or `stale` when the stored task no longer matches `task`: deleted, or
        (with `due_at`) disabled or already advanced past this occurrence.
        The store is re-read under the service lock, so an occurrence is
        dispatched at most once even when a previous run finishes mid-tick.
        """
        with self._lock:
            if task.id in self._in_flight:
                return "in_flight"
            fresh = self._store.get_task(task.id)
            if fresh is None:
                return "stale"
            if due_at is not None and (fresh.next_run != task.next_run or not fresh.is_due(due_at)):
                return "stale"
            thread = Thread(target=self._execute_task, args=(fresh,), daemon=True, name=f"taskloom-run-{fresh.id}")
            self._in_flight[fresh.id] = thread
        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._in_flight.pop(fresh.id, None)
            raise
        return "dispatched"

    def _execute_task(self, task: ScheduledTask) -> None:
        started_at = self._utc_now()
        self._record_event(event_type="run_started", payload={"task_id": task.id, "task_name": task.name})
        try:
            result = self._executor.execute(task, now=started_at)
            detail: dict[str, Any] = {
                "task_id": task.id,
                "task_name": task.name,
                "success": result.success,
                "duration_ms": result.duration_ms,
            }
            if result.error:
                detail["error"] = result.error[:300]

            # Reschedule first so a failed history write never leaves the task due.
            try:
                detail["task_deleted"] = self._store.record_execution(task.id, started_at) is None
            except Exception as exc:
                logger.exception("Failed to reschedule task %s", task.id)
                detail["reschedule_error"] = str(exc)[:300]
            try:
                self._history.append(result)
            except Exception as exc:
                logger.exception("Failed to store result for task %s", task.id)
                detail["history_error"] = str(exc)[:300]

            failed = "reschedule_error" in detail or "history_error" in detail
            self._record_event(event_type="run_failed" if failed else "run_finished", payload=detail)
            logger.info("Task %s (%s) finished success=%s", task.name, task.id, result.success)
        except Exception as exc:
            logger.exception("Execution failed for task %s", task.id)
            self._record_event(
                event_type="run_failed",
                payload={"task_id": task.id, "task_name": task.name, "error": str(exc)[:300]},
            )
        finally:
            with self._lock:
                self._in_flight.pop(task.id, None)

    def tick(self, *, now: datetime | None = None) -> dict[str, Any]:
        self._refresh_settings()
        now_dt = as_utc(now) if isinstance(now, datetime) else self._utc_now()
        due = self._store.list_due_tasks(now=now_dt)
        dispatched: list[str] = []
        skipped: list[str] = []
        stale: list[str] = []
        for task in due:
            outcome = self._try_dispatch(task, due_at=now_dt)
            if outcome == "dispatched":
                dispatched.append(task.id)
            elif outcome == "in_flight":
                skipped.append(task.id)
                self._record_event(event_type="run_skipped_in_flight", payload={"task_id": task.id})
            else:
                stale.append(task.id)
        with self._lock:
            self._last_tick_at = now_dt.isoformat()
        return {
            "ok": True,
            "tick_at": now_dt.isoformat(),
            "due": len(due),
            "dispatched": dispatched,
            "skipped_in_flight": skipped,
            "skipped_stale": stale,
        }

    def wait_idle(self, *, timeout_sec: float = 5.0) -> bool:
        """Block until no execution is in flight. Returns False on timeout."""
        deadline = monotonic() + max(0.0, timeout_sec)
        for worker in self._in_flight_snapshot().values():
            worker.join(timeout=max(0.0, deadline - monotonic()))
        return not self._in_flight_snapshot()

    # ---- commands ----

    def create_task(self, *, name: str, agent_id: str, prompt_template: str, schedule_type: Any) -> dict[str, Any]:
        try:
            task = self._store.create_task(
                name=name,
                agent_id=agent_id,
                prompt_template=prompt_template,
                schedule=schedule_type,
            )
        except TaskValidationError as exc:
            return _err(str(exc), error_type="validation")
        self._record_event(event_type="task_created", payload={"task_id": task.id, "task_name": task.name})
        return _ok(task.to_dict())

    def list_tasks(self) -> dict[str, Any]:
        return _ok([task.to_dict() for task in self._store.list_tasks()])

    def delete_task(self, *, task_id: str) -> dict[str, Any]:
        try:
            self._store.delete_task(task_id)
        except TaskNotFoundError as exc:
            return _err(str(exc), error_type="not_found")
        self._record_event(event_type="task_deleted", payload={"task_id": task_id})
        return _ok(None)

    def toggle_task(self, *, task_id: str, enabled: bool) -> dict[str, Any]:
        try:
            task = self._store.toggle_task(task_id, bool(enabled))
        except TaskNotFoundError as exc:
            return _err(str(exc), error_type="not_found")
        self._record_event(event_type="task_toggled", payload={"task_id": task_id, "enabled": task.enabled})
        return _ok(task.to_dict())

    def get_task_results(self, *, limit: int = 50) -> dict[str, Any]:
        return _ok([result.to_dict() for result in self._history.recent(limit)])

    def run_task_now(self, *, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            return _err(f"Task `{task_id}` not found.", error_type="not_found")
        outcome = self._try_dispatch(task)
        if outcome == "stale":
            return _err(f"Task `{task_id}` not found.", error_type="not_found")
        if outcome == "in_flight":
            self._record_event(event_type="run_skipped_in_flight", payload={"task_id": task.id, "trigger": "manual"})
        return _ok({"task_id": task.id, "dispatched": outcome == "dispatched"})

    def list_agents(self) -> dict[str, Any]:
        return _ok([agent.to_dict() for agent in self._registry.list_agents()])

    def status(self) -> dict[str, Any]:
        settings = self._refresh_settings()
        counts = self._store.count_tasks()
        with self._lock:
            running = self._loop_thread is not None and self._loop_thread.is_alive()
            in_flight = sorted(self._in_flight)
            last_tick_at = self._last_tick_at
        return {
            "ok": True,
            "service": {
                "running": running,
                "enabled_in_config": settings.enabled,
                **{key: value for key, value in asdict(settings).items() if key != "enabled"},
                "db_path": str(self._store.db_path),
                "last_tick_at": last_tick_at,
            },
            "runtime": {
                "task_count": counts["total"],
                "enabled_task_count": counts["enabled"],
                "in_flight_task_ids": in_flight,
                "result_count": self._history.count(),
            },
            "recent_events": self.recent_events(limit=20),
        }


_SCHEDULER_SERVICE: SchedulerService | None = None


def get_scheduler_service() -> SchedulerService:
    global _SCHEDULER_SERVICE
    if _SCHEDULER_SERVICE is None:
        _SCHEDULER_SERVICE = SchedulerService()
    return _SCHEDULER_SERVICE
