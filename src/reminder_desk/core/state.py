# src/reminder_desk/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..reminders.notified import NotifiedCache
from ..reminders.session import ReminderSession
from ..reminders.store import ReminderStore
from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    user_id: str
    task_store: TaskStore
    reminder_store: ReminderStore
    notified: NotifiedCache
    session: ReminderSession

    # Guards command handling against the background poller thread.
    lock: threading.RLock = field(default_factory=threading.RLock)
