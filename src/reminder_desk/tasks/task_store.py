# src/reminder_desk/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path

from ..reminders.models import from_ms, ms_to_dt, to_ms, utc_now
from .task_models import Task

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store: the task provider the reminder core reads from.

    Only what reminders need is stored (title, due date, completion).
    Each method opens its own SQLite connection.
    """

    def __init__(self, db_path: str | Path = "planner.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    due_date INTEGER,
                    completed_at INTEGER,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}
            if "completed_at" not in cols:
                cur.execute("ALTER TABLE tasks ADD COLUMN completed_at INTEGER")
                logger.info("TaskStore migration: added column completed_at")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id, due_date)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"] or ""),
            due_date=from_ms(row["due_date"]),
            completed_at=from_ms(row["completed_at"]),
            created_at=ms_to_dt(row["created_at"]),
            updated_at=ms_to_dt(row["updated_at"]),
        )

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, *, user_id: str, title: str, due_date: datetime | None = None) -> Task:
        if not user_id:
            raise ValueError("user_id is required")
        if not title or not title.strip():
            raise ValueError("title is required")

        now_ms = to_ms(utc_now())
        task_id = uuid.uuid4().hex
        due_ms = to_ms(due_date) if due_date is not None else None

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(id, user_id, title, due_date, completed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, NULL, ?, ?)
                """,
                (task_id, user_id, title.strip(), due_ms, now_ms, now_ms),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Task added id=%s due_date=%s", task_id, due_date)
        return Task(
            id=task_id,
            user_id=user_id,
            title=title.strip(),
            due_date=from_ms(due_ms),
            completed_at=None,
            created_at=ms_to_dt(now_ms),
            updated_at=ms_to_dt(now_ms),
        )

    def get_task(self, task_id: str, *, user_id: str | None = None) -> Task | None:
        conn = self._get_conn()
        try:
            if user_id is None:
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
                ).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def get_task_by_id(self, task_id: str) -> Task | None:
        """Task provider port used by the reminder poller."""
        return self.get_task(task_id)

    def list_tasks(self, user_id: str, *, include_completed: bool = False, limit: int = 50) -> list[Task]:
        where = "user_id = ?" if include_completed else "user_id = ? AND completed_at IS NULL"
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE {where}
                ORDER BY due_date IS NULL, due_date ASC, created_at ASC
                    LIMIT ?
                """,
                (user_id, int(limit)),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def set_due_date(self, task_id: str, user_id: str, due_date: datetime | None) -> bool:
        """
        Change the due date. Existing relative reminders keep their fire time:
        offsets are resolved once, at reminder creation.
        """
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE tasks SET due_date = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (
                    to_ms(due_date) if due_date is not None else None,
                    to_ms(utc_now()),
                    task_id,
                    user_id,
                ),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def complete_task(self, task_id: str, user_id: str, *, now: datetime | None = None) -> bool:
        now_ms = to_ms(now or utc_now())
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE tasks
                SET completed_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND completed_at IS NULL
                """,
                (now_ms, now_ms, task_id, user_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_task(self, task_id: str, user_id: str) -> bool:
        """Delete the task row only; use task_api.delete_task_with_reminders to cascade."""
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
