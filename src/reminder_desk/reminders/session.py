# src/reminder_desk/reminders/session.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime

from ..core.ports import DueSource, ReminderRepo, TaskProvider
from .models import Reminder, utc_now
from .notified import NotifiedCache
from .notify import NotificationDispatcher, ReminderNotification, Toast, ToastBoard
from .poller import DEFAULT_POLL_INTERVAL_SECONDS, poll_once, run_reminder_poller

logger = logging.getLogger(__name__)


class ReminderSession:
    """
    One user's reminder session: the poller task plus the toast actions.

    - start()/stop() own the poller asyncio task (stop on logout/unmount so
      no orphaned timers survive),
    - snooze_toast/dismiss_toast call back into the store and remove the toast,
    - complete_task removes the task's toasts and, when
      complete_task_dismisses_reminders is set, dismisses its reminders.
    """

    def __init__(
            self,
            *,
            user_id: str,
            repo: ReminderRepo,
            tasks: TaskProvider,
            dispatcher: NotificationDispatcher,
            notified: NotifiedCache,
            interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
            batch_limit: int = 20,
            complete_task_dismisses_reminders: bool = False,
            due_source: DueSource | None = None,
    ) -> None:
        self.user_id = user_id
        self.repo = repo
        self.tasks = tasks
        self.dispatcher = dispatcher
        self.notified = notified
        self.interval_seconds = float(interval_seconds)
        self.batch_limit = int(batch_limit)
        self.complete_task_dismisses_reminders = bool(complete_task_dismisses_reminders)
        self.due_source = due_source
        self._poller: asyncio.Task[None] | None = None

    @property
    def toasts(self) -> ToastBoard:
        return self.dispatcher.toasts

    @property
    def running(self) -> bool:
        return self._poller is not None and not self._poller.done()

    # ---- lifecycle ----

    def start(self) -> asyncio.Task[None]:
        """Hydrate the notified cache and start polling. Must run inside an event loop."""
        if self._poller is not None and not self._poller.done():
            return self._poller
        self.notified.hydrate()
        self._poller = asyncio.create_task(
            run_reminder_poller(
                self.repo,
                self.tasks,
                self.dispatcher,
                self.notified,
                user_id=self.user_id,
                interval_seconds=self.interval_seconds,
                batch_limit=self.batch_limit,
                due_source=self.due_source,
            ),
            name=f"reminder-poller:{self.user_id}",
        )
        return self._poller

    async def stop(self) -> None:
        task, self._poller = self._poller, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def logout(self) -> None:
        await self.stop()
        self.toasts.clear()
        self.notified.clear()

    async def poll_now(self, *, now: datetime | None = None) -> list[ReminderNotification]:
        """Run a single cycle outside the timer (e.g. right after login)."""
        return await poll_once(
            self.repo,
            self.tasks,
            self.dispatcher,
            self.notified,
            user_id=self.user_id,
            now=now,
            batch_limit=self.batch_limit,
            due_source=self.due_source,
        )

    def _requeue(self, reminder: Reminder) -> None:
        """Keep an in-memory due source in step with the store."""
        if self.due_source is None or self.due_source is self.repo:
            return
        push = getattr(self.due_source, "push", None)
        if callable(push):
            push(reminder)

    def _unqueue(self, reminder_id: str) -> None:
        if self.due_source is None or self.due_source is self.repo:
            return
        discard = getattr(self.due_source, "discard", None)
        if callable(discard):
            discard(reminder_id)

    # ---- toast actions ----

    def active_toasts(self, *, now: datetime | None = None) -> list[Toast]:
        return self.toasts.active(now=now)

    def snooze_toast(
            self,
            reminder_id: str,
            *,
            minutes: int | None = None,
            until: datetime | None = None,
            now: datetime | None = None,
    ) -> Reminder:
        """Snooze in the store first; the toast goes away only if that worked."""
        reminder = self.repo.snooze(
            reminder_id, user_id=self.user_id, minutes=minutes, until=until, now=now
        )
        self.toasts.remove(reminder_id)
        self._requeue(reminder)
        return reminder

    def dismiss_toast(self, reminder_id: str, *, now: datetime | None = None) -> Reminder:
        reminder = self.repo.dismiss(reminder_id, user_id=self.user_id, now=now)
        self.toasts.remove(reminder_id)
        self.notified.forget(reminder_id)
        self._requeue(reminder)
        return reminder

    def complete_task(self, task_id: str, *, now: datetime | None = None) -> int:
        """
        Mark the task done in the provider (when it supports it) and clear its toasts.

        Returns the number of reminders dismissed (0 unless the policy flag is on).
        """
        now = now or utc_now()
        complete = getattr(self.tasks, "complete_task", None)
        if callable(complete):
            complete(task_id, self.user_id, now=now)

        removed = self.toasts.remove_for_task(task_id)
        dismissed: list[str] = []
        if self.complete_task_dismisses_reminders:
            dismissed = self.repo.dismiss_for_task(task_id, user_id=self.user_id, now=now)
            for rid in dismissed:
                self.notified.forget(rid)
                self._unqueue(rid)
        logger.info(
            "Task %s completed: %d toast(s) removed, %d reminder(s) dismissed", task_id, len(removed), len(dismissed)
        )
        return len(dismissed)
