# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from reminder_desk.core.state import AppState
from reminder_desk.reminders.models import ReminderType
from reminder_desk.reminders.notified import NotifiedCache
from reminder_desk.reminders.notify import NotificationDispatcher, ToastBoard
from reminder_desk.reminders.session import ReminderSession
from reminder_desk.reminders.store import ReminderStore
from reminder_desk.tasks.task_store import TaskStore

from .fakes import FakeSink

# Task due date used across the store/poller tests.
DUE = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        user_id="u1",
        data_dir=tmp_path,
        reminders_db_path=tmp_path / "planner.sqlite3",
        tasks_db_path=tmp_path / "planner.sqlite3",
        notified_cache_path=tmp_path / "notified.json",
        poll_interval_seconds=0.01,
        poll_batch_limit=20,
        toast_timeout_seconds=10.0,
        notified_cache_max=50,
        complete_task_dismisses_reminders=False,
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def reminder_store(settings: SimpleNamespace, task_store: TaskStore) -> ReminderStore:
    return ReminderStore(settings.reminders_db_path, tasks=task_store)


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def dispatcher(sink: FakeSink) -> NotificationDispatcher:
    return NotificationDispatcher(ToastBoard(timeout_seconds=10.0), {ReminderType.IN_APP: [sink]})


@pytest.fixture()
def notified(settings: SimpleNamespace) -> NotifiedCache:
    return NotifiedCache(settings.notified_cache_path, max_items=settings.notified_cache_max)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    task_store: TaskStore,
    reminder_store: ReminderStore,
    dispatcher: NotificationDispatcher,
    notified: NotifiedCache,
) -> AppState:
    """
    AppState wired with a fake sink.

    NOTE: We keep real SQLite stores here (TaskStore/ReminderStore) because
    their correctness is part of what we want to test.
    """
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
    return AppState(
        settings=settings,
        user_id=settings.user_id,
        task_store=task_store,
        reminder_store=reminder_store,
        notified=notified,
        session=session,
    )
