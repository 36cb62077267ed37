# src/reminder_desk/reminders/poller.py

from __future__ import annotations

"""
Reminder poller.

A small polling loop that:
- asks the due source for reminders whose effective fire time has passed,
- skips the ones this session already showed,
- looks up the owning task (no task context -> nothing is marked sent),
- marks the reminder SENT (conditional update, safe across overlapping cycles),
- emits a notification through the dispatcher.

A failing cycle is logged and skipped; the loop itself only stops when cancelled.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime

from ..core.ports import DueSource, ReminderRepo, TaskProvider
from .errors import NotFoundError
from .models import as_utc, utc_now
from .notified import NotifiedCache
from .notify import NotificationDispatcher, ReminderNotification

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 30.0


def _drop_handled(source: DueSource, repo: ReminderRepo, reminder_id: str) -> None:
    """An in-memory due source forgets ids the store has taken over; the store itself needs nothing."""
    if source is repo:
        return
    discard = getattr(source, "discard", None)
    if callable(discard):
        discard(reminder_id)


async def poll_once(
        repo: ReminderRepo,
        tasks: TaskProvider,
        dispatcher: NotificationDispatcher,
        notified: NotifiedCache,
        *,
        user_id: str | None,
        now: datetime | None = None,
        batch_limit: int = 20,
        due_source: DueSource | None = None,
) -> list[ReminderNotification]:
    """
    Run one poll cycle and return the notifications emitted in it.

    Transient errors (due query, task lookup, store write) end the cycle early;
    whatever was not handled is picked up again on the next one.
    """
    now = as_utc(now or utc_now())
    source = due_source if due_source is not None else repo

    try:
        due = source.list_due(now, user_id=user_id, limit=int(batch_limit))
    except Exception:
        logger.exception("list_due failed; skipping poll cycle")
        return []

    emitted: list[ReminderNotification] = []

    for reminder in due:
        if notified.seen(reminder):
            _drop_handled(source, repo, reminder.id)
            continue

        try:
            task = tasks.get_task_by_id(reminder.task_id)
        except Exception:
            logger.exception("Task lookup failed reminder=%s task=%s; skipping cycle", reminder.id, reminder.task_id)
            break

        if task is None:
            # Owning task is gone: invalidate its reminders instead of firing without context.
            logger.warning("Reminder %s points at missing task %s; deleting", reminder.id, reminder.task_id)
            try:
                repo.delete_for_task(reminder.task_id)
            except Exception:
                logger.exception("delete_for_task failed task=%s", reminder.task_id)
            notified.forget(reminder.id)
            _drop_handled(source, repo, reminder.id)
            continue

        try:
            claimed = repo.mark_sent(reminder.id, user_id=reminder.user_id, now=now)
        except NotFoundError:
            logger.debug("Reminder %s vanished before mark_sent", reminder.id)
            _drop_handled(source, repo, reminder.id)
            continue
        except Exception:
            logger.exception("mark_sent failed reminder=%s; skipping cycle", reminder.id)
            break

        notified.record(reminder)
        _drop_handled(source, repo, reminder.id)

        if not claimed:
            # Another poller (tab/session) got there first and showed it.
            logger.debug("Reminder %s already sent elsewhere", reminder.id)
            continue

        notification = ReminderNotification(
            reminder=reminder,
            task_title=str(getattr(task, "title", "") or "Untitled Task"),
            task_due_date=getattr(task, "due_date", None),
            fired_at=now,
        )

        try:
            results = await dispatcher.emit(notification)
        except Exception:
            logger.exception("Notification emit failed reminder=%s", reminder.id)
            results = []

        failed = [r for r in results if not r.success]
        logger.info(
            "Reminder %s fired (task=%s type=%s sinks_ok=%d sinks_failed=%d)",
            reminder.id,
            reminder.task_id,
            reminder.type.value,
            len(results) - len(failed),
            len(failed),
        )
        emitted.append(notification)

    return emitted


async def run_reminder_poller(
        repo: ReminderRepo,
        tasks: TaskProvider,
        dispatcher: NotificationDispatcher,
        notified: NotifiedCache,
        *,
        user_id: str | None,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        batch_limit: int = 20,
        due_source: DueSource | None = None,
        clock: Callable[[], datetime] = utc_now,
) -> None:
    """
    Poll every interval_seconds, measured from the start of each cycle, so a
    slow cycle delays the next tick instead of stacking on top of it.

    To stop the poller, cancel the coroutine/task.
    """
    interval = max(0.01, float(interval_seconds))
    logger.info("Reminder poller started (user=%s interval=%.1fs)", user_id, interval)

    try:
        while True:
            started = time.monotonic()

            try:
                await poll_once(
                    repo,
                    tasks,
                    dispatcher,
                    notified,
                    user_id=user_id,
                    now=clock(),
                    batch_limit=batch_limit,
                    due_source=due_source,
                )
            except Exception:
                logger.exception("Reminder poll cycle crashed")

            try:
                dispatcher.toasts.expire(now=clock())
            except Exception:
                logger.exception("Toast expiry failed")

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval - elapsed))
    finally:
        logger.info("Reminder poller stopped (user=%s)", user_id)
