"""Bounded, append-only history of task execution results."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock

from .recurrence import as_utc
from .task_store import open_db, resolve_db_path
from .task_types import TaskResult

DEFAULT_CAPACITY = 500


def _parse_executed_at(value: str | None) -> datetime:
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).astimezone(UTC)
    except ValueError:
        return datetime.fromtimestamp(0, tz=UTC)


class ResultHistory:
    """Oldest entries are evicted first once `capacity` is exceeded."""

    def __init__(self, db_path: str | Path | None = None, *, capacity: int = DEFAULT_CAPACITY) -> None:
        self._db_path = resolve_db_path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._capacity = max(1, int(capacity))
        self._lock = RLock()
        self.ensure_schema()

    @property
    def capacity(self) -> int:
        return self._capacity

    def set_capacity(self, capacity: int) -> None:
        with self._lock:
            self._capacity = max(1, int(capacity))
            with open_db(self._db_path) as conn:
                self._evict(conn)

    def ensure_schema(self) -> None:
        with open_db(self._db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS task_results (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    task_name TEXT NOT NULL,
                    agent_name TEXT NOT NULL,
                    executed_at TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    response TEXT,
                    success INTEGER NOT NULL CHECK (success IN (0, 1)),
                    error TEXT,
                    duration_ms INTEGER
                );
                """
            )

    def _evict(self, conn: sqlite3.Connection) -> int:
        cur = conn.execute(
            """
            DELETE FROM task_results
            WHERE seq NOT IN (
                SELECT seq FROM task_results ORDER BY seq DESC LIMIT ?
            );
            """,
            (self._capacity,),
        )
        return int(cur.rowcount or 0)

    def append(self, result: TaskResult) -> None:
        with self._lock, open_db(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO task_results(
                    task_id, task_name, agent_name, executed_at, prompt,
                    response, success, error, duration_ms
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    result.task_id,
                    result.task_name,
                    result.agent_name,
                    as_utc(result.executed_at).isoformat(),
                    result.prompt,
                    result.response,
                    1 if result.success else 0,
                    result.error,
                    result.duration_ms,
                ),
            )
            self._evict(conn)

    def recent(self, limit: int = 50) -> list[TaskResult]:
        """Newest first. Out-of-range limits clamp to the history capacity."""
        try:
            requested = int(limit)
        except (TypeError, ValueError):
            requested = self._capacity
        safe_limit = requested if 0 < requested <= self._capacity else self._capacity
        with self._lock, open_db(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM task_results ORDER BY seq DESC LIMIT ?;",
                (safe_limit,),
            ).fetchall()
        return [
            TaskResult(
                task_id=str(row["task_id"]),
                task_name=str(row["task_name"]),
                agent_name=str(row["agent_name"]),
                executed_at=_parse_executed_at(row["executed_at"]),
                prompt=str(row["prompt"]),
                success=bool(row["success"]),
                response=row["response"],
                error=row["error"],
                duration_ms=int(row["duration_ms"]) if row["duration_ms"] is not None else None,
            )
            for row in rows
        ]

    def count(self) -> int:
        with self._lock, open_db(self._db_path) as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM task_results;").fetchone()
        return int(n)
