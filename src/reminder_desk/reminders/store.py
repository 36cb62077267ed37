# src/reminder_desk/reminders/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from ..core.ports import TaskProvider
from .errors import InvalidScheduleError, InvalidStateError, NotFoundError
from .models import (
    MAX_RELATIVE_OFFSET,
    MAX_SNOOZE_MINUTES,
    MIN_SNOOZE_MINUTES,
    Reminder,
    ReminderPage,
    ReminderSpec,
    ReminderStatus,
    ReminderType,
    as_utc,
    from_ms,
    ms_to_dt,
    to_ms,
    utc_now,
)

logger = logging.getLogger(__name__)

MAX_REMINDERS_PER_BATCH = 5
MAX_PAGE_SIZE = 100

_SORT_COLUMNS = {
    "fire_at": "fire_at",
    "created_at": "created_at",
    "snoozed_until": "snoozed_until",
}

# Effective fire time as SQL: snoozed_until while snoozed, else fire_at.
_EFFECTIVE_AT = "CASE WHEN status = 'SNOOZED' THEN snoozed_until ELSE fire_at END"


def compute_fire_at(due_date: datetime | None, relative_offset: int) -> datetime:
    """fire_at = due_date - relative_offset minutes."""
    if due_date is None:
        raise InvalidScheduleError("Task must have a due date for relative reminders")
    return as_utc(due_date) - timedelta(minutes=int(relative_offset))


def _check_offset(relative_offset: Any) -> int:
    if isinstance(relative_offset, bool) or not isinstance(relative_offset, int):
        raise InvalidScheduleError(f"relative_offset must be an integer, got {relative_offset!r}")
    if relative_offset < 0 or relative_offset > MAX_RELATIVE_OFFSET:
        raise InvalidScheduleError(f"relative_offset must be within 0..{MAX_RELATIVE_OFFSET} minutes")
    return relative_offset


class ReminderStore:
    """
    SQLite reminder store.

    Every state transition is a single conditional UPDATE
    ("... WHERE status IN (...)"), so overlapping pollers or several sessions
    for the same user cannot lose updates. markSent and dismiss are no-ops
    when the guard does not match instead of raising.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "planner.sqlite3", *, tasks: TaskProvider | None = None) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tasks = tasks
        self._ensure_schema()
        try:
            total = self.count_reminders()
        except Exception:
            total = -1
        logger.info("ReminderStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

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
                CREATE TABLE IF NOT EXISTS reminders (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'IN_APP',
                    fire_at INTEGER NOT NULL,
                    relative_offset INTEGER,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    snoozed_until INTEGER,
                    snooze_count INTEGER NOT NULL DEFAULT 0,
                    sent_at INTEGER,
                    dismissed_at INTEGER,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(reminders)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE reminders ADD COLUMN {name} {decl}")
                logger.info("ReminderStore migration: added column %s", name)

            add_col("snoozed_until", "INTEGER")
            add_col("snooze_count", "INTEGER NOT NULL DEFAULT 0")
            add_col("sent_at", "INTEGER")
            add_col("dismissed_at", "INTEGER")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(status, fire_at, snoozed_until)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_owner ON reminders(user_id, task_id)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            user_id=str(row["user_id"]),
            type=ReminderType.parse(row["type"]),
            fire_at=ms_to_dt(row["fire_at"]),
            relative_offset=int(row["relative_offset"]) if row["relative_offset"] is not None else None,
            status=ReminderStatus.from_db(row["status"]),
            snoozed_until=from_ms(row["snoozed_until"]),
            snooze_count=int(row["snooze_count"] or 0),
            sent_at=from_ms(row["sent_at"]),
            dismissed_at=from_ms(row["dismissed_at"]),
            created_at=ms_to_dt(row["created_at"]),
            updated_at=ms_to_dt(row["updated_at"]),
        )

    def _fetch(self, conn: sqlite3.Connection, reminder_id: str, user_id: str | None) -> Reminder | None:
        if user_id is None:
            row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        else:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
            ).fetchone()
        return self._row_to_reminder(row) if row else None

    def _require(self, conn: sqlite3.Connection, reminder_id: str, user_id: str | None) -> Reminder:
        reminder = self._fetch(conn, reminder_id, user_id)
        if reminder is None:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        return reminder

    def _resolve_fire_at(self, spec: ReminderSpec, due_date: datetime | None, now: datetime) -> datetime:
        if spec.relative_offset is not None:
            return compute_fire_at(due_date, _check_offset(spec.relative_offset))

        if spec.fire_at is not None:
            fire_at = as_utc(spec.fire_at)
            if fire_at <= now:
                # Accepted: it will be picked up as due on the next poll.
                logger.info("Reminder fire_at %s is not in the future; it fires on next poll", fire_at)
            return fire_at

        if due_date is None:
            raise InvalidScheduleError("Either fire_at or relative_offset must be provided")
        return as_utc(due_date)

    def _load_task_due(self, task_id: str, user_id: str) -> datetime | None:
        if self._tasks is None:
            raise RuntimeError("ReminderStore has no task provider; cannot create reminders")
        task = self._tasks.get_task_by_id(task_id)
        if task is None or getattr(task, "user_id", user_id) != user_id:
            raise NotFoundError(f"Task {task_id} not found")
        return getattr(task, "due_date", None)

    # ---- creation ----

    def count_reminders(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM reminders").fetchone()
            return int(n)
        finally:
            conn.close()

    def create(
        self,
        *,
        user_id: str,
        task_id: str,
        type: ReminderType | str = ReminderType.IN_APP,
        fire_at: datetime | None = None,
        relative_offset: int | None = None,
        now: datetime | None = None,
    ) -> Reminder:
        """
        Create one PENDING reminder for a task.

        relative_offset wins over fire_at; with neither, the task's due date is used.
        Raises NotFoundError (unknown/foreign task) or InvalidScheduleError.
        """
        spec = ReminderSpec(type=ReminderType.parse(type), fire_at=fire_at, relative_offset=relative_offset)
        return self.create_many(user_id=user_id, task_id=task_id, specs=[spec], now=now)[0]

    def create_many(
        self,
        *,
        user_id: str,
        task_id: str,
        specs: Sequence[ReminderSpec],
        now: datetime | None = None,
    ) -> list[Reminder]:
        """Create up to MAX_REMINDERS_PER_BATCH reminders in one transaction (all or nothing)."""
        if not specs:
            raise ValueError("at least one reminder is required")
        if len(specs) > MAX_REMINDERS_PER_BATCH:
            raise ValueError(f"at most {MAX_REMINDERS_PER_BATCH} reminders per task per call")

        now = as_utc(now or utc_now())
        due_date = self._load_task_due(task_id, user_id)
        now_ms = to_ms(now)

        rows: list[tuple[Any, ...]] = []
        for spec in specs:
            fire_at = self._resolve_fire_at(spec, due_date, now)
            rows.append(
                (
                    uuid.uuid4().hex,
                    task_id,
                    user_id,
                    ReminderType.parse(spec.type).value,
                    to_ms(fire_at),
                    spec.relative_offset,
                    ReminderStatus.PENDING.value,
                    now_ms,
                    now_ms,
                )
            )

        conn = self._get_conn()
        try:
            conn.executemany(
                """
                INSERT INTO reminders(
                    id, task_id, user_id, type, fire_at, relative_offset,
                    status, snoozed_until, snooze_count, sent_at, dismissed_at,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, NULL, 0, NULL, NULL, ?, ?)
                """,
                rows,
            )
            conn.commit()
            created = [self._require(conn, r[0], user_id) for r in rows]
        finally:
            conn.close()

        for r in created:
            logger.debug(
                "Reminder created id=%s task=%s type=%s fire_at=%s offset=%s",
                r.id,
                r.task_id,
                r.type.value,
                r.fire_at,
                r.relative_offset,
            )
        return created

    # ---- queries ----

    def get(self, reminder_id: str, *, user_id: str | None = None) -> Reminder:
        conn = self._get_conn()
        try:
            return self._require(conn, reminder_id, user_id)
        finally:
            conn.close()

    def list_for_task(self, task_id: str, *, user_id: str) -> list[Reminder]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE task_id = ? AND user_id = ? ORDER BY fire_at ASC",
                (task_id, user_id),
            ).fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def list_due(
        self,
        now: datetime,
        *,
        user_id: str | None = None,
        task_id: str | None = None,
        limit: int = 50,
    ) -> list[Reminder]:
        """
        Reminders the poller should fire: PENDING with fire_at <= now, or
        SNOOZED with snoozed_until <= now. Oldest effective time first.
        """
        where = [
            "((status = 'PENDING' AND fire_at <= ?) OR (status = 'SNOOZED' AND snoozed_until <= ?))"
        ]
        now_ms = to_ms(now)
        params: list[Any] = [now_ms, now_ms]
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        if task_id is not None:
            where.append("task_id = ?")
            params.append(task_id)
        params.append(int(limit))

        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""
                SELECT *
                FROM reminders
                WHERE {' AND '.join(where)}
                ORDER BY {_EFFECTIVE_AT} ASC, created_at ASC
                    LIMIT ?
                """,
                params,
            ).fetchall()
            return [self._row_to_reminder(r) for r in rows]
        finally:
            conn.close()

    def list_reminders(
        self,
        *,
        user_id: str,
        status: ReminderStatus | None = None,
        type: ReminderType | None = None,
        task_id: str | None = None,
        fire_before: datetime | None = None,
        fire_after: datetime | None = None,
        sort_by: str = "fire_at",
        sort_order: str = "asc",
        limit: int = 50,
        offset: int = 0,
    ) -> ReminderPage:
        """
        Filtered, paginated listing. fire_before/fire_after compare the
        effective fire time, so snoozed reminders are placed by snoozed_until.
        """
        column = _SORT_COLUMNS.get(sort_by)
        if column is None:
            raise ValueError(f"unsupported sort_by: {sort_by!r}")
        direction = sort_order.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"unsupported sort_order: {sort_order!r}")
        limit = int(limit)
        offset = int(offset)
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValueError(f"limit must be within 1..{MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        where = ["user_id = ?"]
        params: list[Any] = [user_id]
        if status is not None:
            where.append("status = ?")
            params.append(ReminderStatus(status).value)
        if type is not None:
            where.append("type = ?")
            params.append(ReminderType.parse(type).value)
        if task_id is not None:
            where.append("task_id = ?")
            params.append(task_id)
        if fire_before is not None:
            where.append(f"{_EFFECTIVE_AT} <= ?")
            params.append(to_ms(fire_before))
        if fire_after is not None:
            where.append(f"{_EFFECTIVE_AT} >= ?")
            params.append(to_ms(fire_after))
        where_sql = " AND ".join(where)

        conn = self._get_conn()
        try:
            (total,) = conn.execute(f"SELECT COUNT(*) FROM reminders WHERE {where_sql}", params).fetchone()
            rows = conn.execute(
                f"""
                SELECT *
                FROM reminders
                WHERE {where_sql}
                ORDER BY {column} {direction.upper()}, id ASC
                    LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            return ReminderPage(
                reminders=[self._row_to_reminder(r) for r in rows],
                total=int(total),
                limit=limit,
                offset=offset,
            )
        finally:
            conn.close()

    def count_by_status(self, user_id: str) -> dict[ReminderStatus, int]:
        out = {s: 0 for s in ReminderStatus}
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM reminders WHERE user_id = ? GROUP BY status",
                (user_id,),
            ).fetchall()
            for row in rows:
                out[ReminderStatus.from_db(row["status"])] += int(row["n"])
            return out
        finally:
            conn.close()

    # ---- transitions ----

    def snooze(
        self,
        reminder_id: str,
        *,
        user_id: str,
        minutes: int | None = None,
        until: datetime | None = None,
        now: datetime | None = None,
    ) -> Reminder:
        """
        Defer a PENDING/SENT/SNOOZED reminder. Every call increments snooze_count.

        Raises NotFoundError, InvalidStateError (dismissed) or InvalidScheduleError.
        """
        if (minutes is None) == (until is None):
            raise InvalidScheduleError("Exactly one of minutes or until must be provided")

        now = as_utc(now or utc_now())
        if until is not None:
            snoozed_until = as_utc(until)
        else:
            if isinstance(minutes, bool) or not isinstance(minutes, int):
                raise InvalidScheduleError(f"minutes must be an integer, got {minutes!r}")
            if minutes < MIN_SNOOZE_MINUTES or minutes > MAX_SNOOZE_MINUTES:
                raise InvalidScheduleError(
                    f"Snooze duration must be within {MIN_SNOOZE_MINUTES}..{MAX_SNOOZE_MINUTES} minutes"
                )
            snoozed_until = now + timedelta(minutes=minutes)

        if snoozed_until <= now:
            raise InvalidScheduleError("Snooze time must be in the future")

        now_ms = to_ms(now)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE reminders
                SET status = 'SNOOZED',
                    snoozed_until = ?,
                    snooze_count = snooze_count + 1,
                    updated_at = ?
                WHERE id = ?
                  AND user_id = ?
                  AND status IN ('PENDING','SENT','SNOOZED')
                """,
                (to_ms(snoozed_until), now_ms, reminder_id, user_id),
            )
            conn.commit()
            if cur.rowcount != 1:
                existing = self._require(conn, reminder_id, user_id)
                raise InvalidStateError(f"Cannot snooze a {existing.status.value.lower()} reminder")
            reminder = self._require(conn, reminder_id, user_id)
        finally:
            conn.close()

        logger.info(
            "Reminder %s snoozed until %s (count=%s)", reminder_id, snoozed_until, reminder.snooze_count
        )
        return reminder

    def dismiss(self, reminder_id: str, *, user_id: str, now: datetime | None = None) -> Reminder:
        """Terminal transition from any non-dismissed state. Dismissing twice is a no-op."""
        now_ms = to_ms(now or utc_now())
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE reminders
                SET status = 'DISMISSED',
                    dismissed_at = ?,
                    snoozed_until = NULL,
                    updated_at = ?
                WHERE id = ?
                  AND user_id = ?
                  AND status != 'DISMISSED'
                """,
                (now_ms, now_ms, reminder_id, user_id),
            )
            conn.commit()
            reminder = self._require(conn, reminder_id, user_id)
        finally:
            conn.close()

        if cur.rowcount == 1:
            logger.info("Reminder %s dismissed", reminder_id)
        else:
            logger.debug("Reminder %s already dismissed", reminder_id)
        return reminder

    def mark_sent(self, reminder_id: str, *, user_id: str | None = None, now: datetime | None = None) -> bool:
        """
        PENDING/SNOOZED past their effective fire time -> SENT.

        Returns True if this caller performed the transition. Already SENT,
        DISMISSED or not-yet-due reminders are left untouched (False).
        """
        now_ms = to_ms(now or utc_now())
        owner_sql = ""
        params: list[Any] = [now_ms, now_ms, reminder_id]
        if user_id is not None:
            owner_sql = "AND user_id = ?"
            params.append(user_id)
        params.extend([now_ms, now_ms])

        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"""
                UPDATE reminders
                SET status = 'SENT',
                    sent_at = ?,
                    snoozed_until = NULL,
                    updated_at = ?
                WHERE id = ?
                  {owner_sql}
                  AND (
                    (status = 'PENDING' AND fire_at <= ?)
                        OR (status = 'SNOOZED' AND snoozed_until <= ?)
                    )
                """,
                params,
            )
            conn.commit()
            if cur.rowcount == 1:
                logger.debug("Reminder %s -> SENT", reminder_id)
                return True
            self._require(conn, reminder_id, user_id)
            return False
        finally:
            conn.close()

    def dismiss_for_task(self, task_id: str, *, user_id: str, now: datetime | None = None) -> list[str]:
        """Dismiss every non-dismissed reminder of a task; returns the ids this call dismissed."""
        now_ms = to_ms(now or utc_now())
        conn = self._get_conn()
        try:
            # Write lock first so the id list matches what the UPDATE touches.
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute(
                "SELECT id FROM reminders WHERE task_id = ? AND user_id = ? AND status != 'DISMISSED'",
                (task_id, user_id),
            ).fetchall()
            ids = [str(r["id"]) for r in rows]
            if ids:
                placeholders = ",".join("?" for _ in ids)
                conn.execute(
                    f"""
                    UPDATE reminders
                    SET status = 'DISMISSED',
                        dismissed_at = ?,
                        snoozed_until = NULL,
                        updated_at = ?
                    WHERE id IN ({placeholders})
                    """,
                    (now_ms, now_ms, *ids),
                )
            conn.commit()
        finally:
            conn.close()

        if ids:
            logger.info("Dismissed %d reminder(s) of task %s", len(ids), task_id)
        return ids

    # ---- deletion ----

    def delete(self, reminder_id: str, *, user_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_many(self, reminder_ids: Iterable[str], *, user_id: str) -> int:
        ids = [str(i) for i in reminder_ids]
        if not ids:
            return 0
        placeholders = ",".join("?" for _ in ids)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"DELETE FROM reminders WHERE user_id = ? AND id IN ({placeholders})",
                (user_id, *ids),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def delete_for_task(self, task_id: str, *, user_id: str | None = None) -> int:
        """Cascade used when the owning task goes away."""
        conn = self._get_conn()
        try:
            if user_id is None:
                cur = conn.execute("DELETE FROM reminders WHERE task_id = ?", (task_id,))
            else:
                cur = conn.execute(
                    "DELETE FROM reminders WHERE task_id = ? AND user_id = ?", (task_id, user_id)
                )
            conn.commit()
            n = int(cur.rowcount)
        finally:
            conn.close()
        if n:
            logger.info("Deleted %d reminder(s) of task %s", n, task_id)
        return n
