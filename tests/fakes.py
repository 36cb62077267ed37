# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reminder_desk.reminders.notify import ReminderNotification
from reminder_desk.tasks.task_models import Task


@dataclass(slots=True)
class FakeSink:
    """
    NotificationSink used by dispatcher/poller tests.

    - Captures displayed notifications for assertions
    - Counts permission prompts
    """

    name: str = "fake"
    granted: bool = True
    fail: bool = False
    displayed: list[ReminderNotification] = field(default_factory=list)
    permission_requests: int = 0

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def display(self, notification: ReminderNotification) -> None:
        if self.fail:
            raise RuntimeError("sink exploded")
        self.displayed.append(notification)


class FakeTaskProvider:
    """In-memory TaskProvider; `broken=True` makes every lookup raise."""

    def __init__(self, tasks: list[Task] | None = None, *, broken: bool = False) -> None:
        self.tasks = {t.id: t for t in tasks or []}
        self.broken = broken

    def get_task_by_id(self, task_id: str) -> Task | None:
        if self.broken:
            raise RuntimeError("task backend down")
        return self.tasks.get(task_id)


@dataclass(slots=True)
class FakeMatrixClient:
    sent: list[dict[str, Any]] = field(default_factory=list)
    closed: bool = False

    async def room_send(self, **kwargs: Any) -> None:
        self.sent.append(kwargs)

    async def close(self) -> None:
        self.closed = True
