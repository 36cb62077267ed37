# src/reminder_desk/tasks/task_api.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..core.state import AppState
from ..reminders.models import utc_now
from .task_models import Task

logger = logging.getLogger(__name__)


def add_task_due_in(
    state: AppState,
    *,
    title: str,
    due_in_minutes: int | None = None,
    user_id: str | None = None,
) -> Task:
    """
    Convenience helper: create a task due `due_in_minutes` from now
    (None -> no due date).
    """
    due = None
    if due_in_minutes is not None:
        due = utc_now() + timedelta(minutes=max(0, int(due_in_minutes)))
    return state.task_store.add_task(user_id=user_id or state.user_id, title=title, due_date=due)


def delete_task_with_reminders(state: AppState, task_id: str, *, user_id: str | None = None) -> bool:
    """
    Delete a task and every reminder attached to it, reminders first so a
    crash in between never leaves reminders pointing at a missing task.
    """
    owner = user_id or state.user_id
    if state.task_store.get_task(task_id, user_id=owner) is None:
        return False

    removed = state.reminder_store.delete_for_task(task_id, user_id=owner)
    state.session.toasts.remove_for_task(task_id)
    deleted = state.task_store.delete_task(task_id, owner)
    logger.info("Task %s deleted (reminders removed=%d)", task_id, removed)
    return deleted


def reschedule_task(state: AppState, task_id: str, due_date: datetime | None, *, user_id: str | None = None) -> bool:
    """Move a task's due date. Reminders already created keep their fire time."""
    return state.task_store.set_due_date(task_id, user_id or state.user_id, due_date)
