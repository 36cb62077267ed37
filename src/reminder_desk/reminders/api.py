# src/reminder_desk/reminders/api.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.state import AppState
from .errors import NotFoundError, ReminderError
from .models import REMINDER_PRESETS, Reminder, ReminderStatus, ReminderType, as_utc, iso_z, utc_now

logger = logging.getLogger(__name__)

BATCH_OPERATIONS = ("delete", "dismiss", "markSent")
MAX_BATCH_IDS = 50


@dataclass(slots=True)
class BatchResult:
    operation: str
    count: int
    reminders: list[Reminder] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


def add_preset_reminder(
    state: AppState,
    *,
    task_id: str,
    preset: str = "15min_before",
    type: ReminderType | str = ReminderType.IN_APP,
    user_id: str | None = None,
    now: datetime | None = None,
) -> Reminder:
    """
    Convenience helper: attach a reminder using a named preset
    (at_deadline, 5min_before, ..., 1day_before).
    """
    if preset not in REMINDER_PRESETS:
        raise ValueError(f"unknown reminder preset: {preset!r}")
    return state.reminder_store.create(
        user_id=user_id or state.user_id,
        task_id=task_id,
        type=type,
        relative_offset=REMINDER_PRESETS[preset],
        now=now,
    )


def batch_reminders(
    state: AppState,
    operation: str,
    reminder_ids: list[str],
    *,
    user_id: str | None = None,
    now: datetime | None = None,
) -> BatchResult:
    """
    Apply one operation to up to MAX_BATCH_IDS reminders.

    dismiss/markSent are applied one by one; ids that fail are reported in
    `errors` and do not abort the rest.
    """
    if operation not in BATCH_OPERATIONS:
        raise ValueError(f"unsupported batch operation: {operation!r}")
    if not reminder_ids:
        raise ValueError("at least one reminder id is required")
    if len(reminder_ids) > MAX_BATCH_IDS:
        raise ValueError(f"cannot operate on more than {MAX_BATCH_IDS} reminders at once")

    owner = user_id or state.user_id
    store = state.reminder_store
    result = BatchResult(operation=operation, count=0)

    if operation == "delete":
        result.count = store.delete_many(reminder_ids, user_id=owner)
        for rid in reminder_ids:
            state.notified.forget(rid)
        return result

    for rid in reminder_ids:
        try:
            if operation == "dismiss":
                reminder = store.dismiss(rid, user_id=owner, now=now)
                state.notified.forget(rid)
                result.reminders.append(reminder)
                result.count += 1
            elif store.mark_sent(rid, user_id=owner, now=now):
                result.reminders.append(store.get(rid, user_id=owner))
                result.count += 1
        except ReminderError as e:
            result.errors[rid] = str(e)

    logger.info("Batch %s: %d/%d reminder(s) affected", operation, result.count, len(reminder_ids))
    return result


def reminder_summary(state: AppState, reminder: Reminder, *, now: datetime | None = None) -> dict[str, Any]:
    """Display-oriented view of a reminder joined with its task."""
    now = as_utc(now or utc_now())
    task = state.task_store.get_task_by_id(reminder.task_id)
    return {
        "id": reminder.id,
        "type": reminder.type.value,
        "fireAt": iso_z(reminder.effective_fire_at),
        "status": reminder.status.value,
        "isOverdue": reminder.is_due(now),
        "isSnoozed": reminder.status == ReminderStatus.SNOOZED,
        "taskTitle": (task.title if task is not None else "") or "Untitled Task",
        "taskDueDate": iso_z(task.due_date) if task is not None else None,
    }


def status_counts(state: AppState, *, user_id: str | None = None) -> dict[str, int]:
    counts = state.reminder_store.count_by_status(user_id or state.user_id)
    return {status.value: n for status, n in counts.items()}


def find_reminder(state: AppState, reminder_id: str, *, user_id: str | None = None) -> Reminder | None:
    try:
        return state.reminder_store.get(reminder_id, user_id=user_id or state.user_id)
    except NotFoundError:
        return None
