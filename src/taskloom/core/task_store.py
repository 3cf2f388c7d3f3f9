"""SQLite-backed store for scheduled task definitions."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Iterator
from uuid import uuid4

from .agent_registry import AgentRegistry
from .recurrence import DEFAULT_TIMEZONE, as_utc, compute_next_run
from .schedule_types import Schedule, ScheduleValidationError, parse_schedule, schedule_to_dict
from .task_types import ScheduledTask, TaskNotFoundError, TaskValidationError

DEFAULT_DB_PATH = "data/taskloom.db"

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _iso(dt: datetime | None) -> str | None:
    return as_utc(dt).isoformat() if isinstance(dt, datetime) else None


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)
    except ValueError:
        return None


def resolve_db_path(path: str | Path | None) -> Path:
    candidate = Path(path or DEFAULT_DB_PATH)
    if not candidate.is_absolute():
        candidate = _repo_root() / candidate
    return candidate.resolve()


@contextmanager
def open_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


class TaskStore:
    """Owns every task record.

    All mutations run under one lock so a user toggle and a scheduler update
    of the same row are applied one after the other, never interleaved.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        agent_registry: AgentRegistry | None = None,
        timezone_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._db_path = resolve_db_path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._registry = agent_registry or AgentRegistry()
        self._timezone_name = timezone_name
        self._lock = RLock()
        self.ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    def set_timezone(self, timezone_name: str) -> None:
        with self._lock:
            self._timezone_name = timezone_name

    def set_agent_registry(self, registry: AgentRegistry) -> None:
        with self._lock:
            self._registry = registry

    def ensure_schema(self) -> None:
        with open_db(self._db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    prompt_template TEXT NOT NULL,
                    schedule_json TEXT NOT NULL,
                    enabled INTEGER NOT NULL DEFAULT 1 CHECK (enabled IN (0, 1)),
                    created_at TEXT NOT NULL,
                    last_run TEXT,
                    next_run TEXT,
                    run_count INTEGER NOT NULL DEFAULT 0 CHECK (run_count >= 0)
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_enabled_next_run
                    ON tasks(enabled, next_run);
                """
            )

    def _next_run(self, schedule: Schedule, basis: datetime) -> datetime:
        return compute_next_run(schedule, basis, timezone_name=self._timezone_name)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=str(row["task_id"]),
            name=str(row["name"]),
            agent_id=str(row["agent_id"]),
            prompt_template=str(row["prompt_template"]),
            schedule=parse_schedule(json.loads(row["schedule_json"])),
            enabled=bool(row["enabled"]),
            created_at=_parse_iso(row["created_at"]) or _utc_now(),
            last_run=_parse_iso(row["last_run"]),
            next_run=_parse_iso(row["next_run"]),
            run_count=int(row["run_count"] or 0),
        )

    def _fetch(self, conn: sqlite3.Connection, task_id: str) -> ScheduledTask | None:
        row = conn.execute("SELECT * FROM tasks WHERE task_id = ?;", (task_id,)).fetchone()
        return self._row_to_task(row) if row is not None else None

    def _validate(self, *, name: str, agent_id: str, prompt_template: str, schedule: object) -> Schedule:
        if not str(name or "").strip():
            raise TaskValidationError("name is required.")
        if not str(prompt_template or "").strip():
            raise TaskValidationError("prompt_template is required.")
        clean_agent_id = str(agent_id or "").strip()
        if not clean_agent_id:
            raise TaskValidationError("agent_id is required.")
        if self._registry.resolve(clean_agent_id) is None:
            raise TaskValidationError(f"Unknown agent_id `{clean_agent_id}`.")
        try:
            return parse_schedule(schedule)
        except ScheduleValidationError as exc:
            raise TaskValidationError(str(exc)) from exc

    def create_task(
        self,
        *,
        name: str,
        agent_id: str,
        prompt_template: str,
        schedule: Schedule | dict,
        now: datetime | None = None,
    ) -> ScheduledTask:
        parsed = self._validate(name=name, agent_id=agent_id, prompt_template=prompt_template, schedule=schedule)
        created_at = as_utc(now) if isinstance(now, datetime) else _utc_now()
        task = ScheduledTask(
            id=f"task_{uuid4().hex}",
            name=name.strip(),
            agent_id=agent_id.strip(),
            prompt_template=prompt_template,
            schedule=parsed,
            enabled=True,
            created_at=created_at,
            last_run=None,
            next_run=self._next_run(parsed, created_at),
            run_count=0,
        )
        with self._lock, open_db(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO tasks(
                    task_id, name, agent_id, prompt_template, schedule_json,
                    enabled, created_at, last_run, next_run, run_count
                )
                VALUES (?, ?, ?, ?, ?, 1, ?, NULL, ?, 0);
                """,
                (
                    task.id,
                    task.name,
                    task.agent_id,
                    task.prompt_template,
                    json.dumps(schedule_to_dict(parsed)),
                    _iso(task.created_at),
                    _iso(task.next_run),
                ),
            )
        logger.debug("Task created id=%s next_run=%s", task.id, _iso(task.next_run))
        return task

    def get_task(self, task_id: str) -> ScheduledTask | None:
        with self._lock, open_db(self._db_path) as conn:
            return self._fetch(conn, str(task_id))

    def list_tasks(self) -> list[ScheduledTask]:
        with self._lock, open_db(self._db_path) as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY seq ASC;").fetchall()
        return [self._row_to_task(row) for row in rows]

    def count_tasks(self) -> dict[str, int]:
        with self._lock, open_db(self._db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(enabled), 0) AS enabled FROM tasks;"
            ).fetchone()
        total = int(row["total"] or 0)
        enabled = int(row["enabled"] or 0)
        return {"total": total, "enabled": enabled, "disabled": total - enabled}

    def list_due_tasks(self, *, now: datetime | None = None) -> list[ScheduledTask]:
        now_dt = as_utc(now) if isinstance(now, datetime) else _utc_now()
        with self._lock, open_db(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE enabled = 1 AND next_run IS NOT NULL ORDER BY seq ASC;"
            ).fetchall()
        due = [task for task in (self._row_to_task(row) for row in rows) if task.is_due(now_dt)]
        # isoformat() drops zero microseconds, so compare parsed values, not strings.
        due.sort(key=lambda task: task.next_run or now_dt)
        return due

    def delete_task(self, task_id: str) -> None:
        with self._lock, open_db(self._db_path) as conn:
            cur = conn.execute("DELETE FROM tasks WHERE task_id = ?;", (str(task_id),))
            if cur.rowcount != 1:
                raise TaskNotFoundError(str(task_id))
        logger.debug("Task deleted id=%s", task_id)

    def toggle_task(self, task_id: str, enabled: bool, *, now: datetime | None = None) -> ScheduledTask:
        now_dt = as_utc(now) if isinstance(now, datetime) else _utc_now()
        with self._lock, open_db(self._db_path) as conn:
            task = self._fetch(conn, str(task_id))
            if task is None:
                raise TaskNotFoundError(str(task_id))
            if task.enabled == bool(enabled):
                return task

            task.enabled = bool(enabled)
            # Re-enabling restarts from now so disabled time never piles up missed runs.
            task.next_run = self._next_run(task.schedule, now_dt) if task.enabled else None
            conn.execute(
                "UPDATE tasks SET enabled = ?, next_run = ? WHERE task_id = ?;",
                (1 if task.enabled else 0, _iso(task.next_run), task.id),
            )
        return task

    def record_execution(self, task_id: str, executed_at: datetime) -> ScheduledTask | None:
        """Apply a finished run. Returns None when the task was deleted meanwhile."""
        started = as_utc(executed_at)
        with self._lock, open_db(self._db_path) as conn:
            task = self._fetch(conn, str(task_id))
            if task is None:
                return None
            task.last_run = started
            task.run_count += 1
            if task.enabled:
                task.next_run = self._next_run(task.schedule, started)
            conn.execute(
                "UPDATE tasks SET last_run = ?, run_count = ?, next_run = ? WHERE task_id = ?;",
                (_iso(task.last_run), task.run_count, _iso(task.next_run), task.id),
            )
        return task
