# src/reminder_desk/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (stores, notified cache,
  notification sinks, reminder session).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleNotificationSink
from ..connectors.email_sink import EmailSink
from ..connectors.matrix_client import create_matrix_client
from ..connectors.matrix_push import MatrixPushSink
from ..core.ports import NotificationSink
from ..core.state import AppState
from ..reminders.models import ReminderType
from ..reminders.notified import NotifiedCache
from ..reminders.notify import NotificationDispatcher, ToastBoard
from ..reminders.session import ReminderSession
from ..reminders.store import ReminderStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.reminders_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notified_cache_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.matrix_enabled:
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def build_channels(settings) -> dict[ReminderType, list[NotificationSink]]:
    """Map reminder types to the sinks that deliver them, based on the enabled connectors."""
    channels: dict[ReminderType, list[NotificationSink]] = {t: [] for t in ReminderType}

    channels[ReminderType.IN_APP].append(ConsoleNotificationSink(enabled=settings.os_notifications))

    if settings.matrix_enabled:

        async def _client_factory():
            return await create_matrix_client(settings)

        channels[ReminderType.PUSH].append(MatrixPushSink(_client_factory, room_id=settings.matrix_push_room))
    else:
        logger.info("Matrix disabled: PUSH reminders will only show in-app.")

    if settings.email_enabled:
        channels[ReminderType.EMAIL].append(EmailSink.from_settings(settings))
    else:
        logger.info("Email disabled: EMAIL reminders will only show in-app.")

    return channels


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    reminder_store = ReminderStore(settings.reminders_db_path, tasks=task_store)
    notified = NotifiedCache(settings.notified_cache_path, max_items=settings.notified_cache_max)
    dispatcher = NotificationDispatcher(
        ToastBoard(timeout_seconds=settings.toast_timeout_seconds),
        build_channels(settings),
    )

    session = ReminderSession(
        user_id=settings.user_id,
        repo=reminder_store,
        tasks=task_store,
        dispatcher=dispatcher,
        notified=notified,
        interval_seconds=settings.poll_interval_seconds,
        batch_limit=settings.poll_batch_limit,
        complete_task_dismisses_reminders=settings.complete_task_dismisses_reminders,
    )

    state = AppState(
        settings=settings,
        user_id=settings.user_id,
        task_store=task_store,
        reminder_store=reminder_store,
        notified=notified,
        session=session,
    )
    logger.info(
        "State ready: user=%s db=%s poll=%.1fs",
        settings.user_id,
        settings.reminders_db_path,
        settings.poll_interval_seconds,
    )
    return state
