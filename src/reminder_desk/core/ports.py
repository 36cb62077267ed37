# src/reminder_desk/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the reminder core.

The core depends on Protocols instead of concrete implementations.
This keeps storage and notification sinks swappable and makes testing easier.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Protocol

if TYPE_CHECKING:
    from ..reminders.models import Reminder
    from ..reminders.notify import ReminderNotification


class TaskProvider(Protocol):
    """
    Where task context comes from (title, due date, owner).

    Implementations must return the same due date the reminder was computed
    from, and must cascade reminder deletion when a task is deleted.
    """

    def get_task_by_id(self, task_id: str) -> Any | None: ...


class DueSource(Protocol):
    """
    The "which reminders are due" query the poller drives from.

    ReminderStore answers it with SQL; ReminderDueQueue answers it from a heap.
    """

    def list_due(
            self,
            now: datetime,
            *,
            user_id: str | None = None,
            task_id: str | None = None,
            limit: int = 50,
    ) -> list[Reminder]: ...


class ReminderRepo(DueSource, Protocol):
    def mark_sent(self, reminder_id: str, *, user_id: str | None = None, now: datetime | None = None) -> bool: ...

    def snooze(
            self,
            reminder_id: str,
            *,
            user_id: str,
            minutes: int | None = None,
            until: datetime | None = None,
            now: datetime | None = None,
    ) -> Reminder: ...

    def dismiss(self, reminder_id: str, *, user_id: str, now: datetime | None = None) -> Reminder: ...
    def dismiss_for_task(self, task_id: str, *, user_id: str, now: datetime | None = None) -> list[str]: ...
    def delete_for_task(self, task_id: str, *, user_id: str | None = None) -> int: ...


class NotificationSink(Protocol):
    """
    Somewhere a fired reminder can be shown (OS notification, chat room, mail).

    request_permission() is asked once before the first display; a sink that
    answers False is skipped for the rest of the session.
    """

    name: str

    def request_permission(self) -> Awaitable[bool]: ...
    def display(self, notification: ReminderNotification) -> Awaitable[None]: ...
