# tests/test_notify.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reminder_desk.reminders.models import Reminder, ReminderStatus, ReminderType
from reminder_desk.reminders.notify import NotificationDispatcher, ReminderNotification, ToastBoard

from .fakes import FakeSink

T0 = datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc)


def _notification(rid: str = "r1", *, task_id: str = "t1", type: ReminderType = ReminderType.IN_APP):
    reminder = Reminder(
        id=rid,
        task_id=task_id,
        user_id="u1",
        type=type,
        fire_at=T0,
        relative_offset=30,
        status=ReminderStatus.PENDING,
        snoozed_until=None,
        snooze_count=0,
        sent_at=None,
        dismissed_at=None,
        created_at=T0 - timedelta(days=1),
        updated_at=T0 - timedelta(days=1),
    )
    return ReminderNotification(
        reminder=reminder, task_title="Standup", task_due_date=T0 + timedelta(minutes=30), fired_at=T0
    )


def test_render_text() -> None:
    assert _notification().render_text() == "Reminder: Standup (due 2025-03-10T15:00:00.000Z)"


def test_toast_board_dedups_and_keeps_order() -> None:
    board = ToastBoard(timeout_seconds=10)
    assert board.add(_notification("a"), now=T0)
    assert board.add(_notification("b"), now=T0 + timedelta(seconds=1))
    assert not board.add(_notification("a"), now=T0 + timedelta(seconds=2))
    assert [t.reminder_id for t in board.active(now=T0 + timedelta(seconds=2))] == ["a", "b"]


def test_toast_board_expiry_and_task_removal() -> None:
    board = ToastBoard(timeout_seconds=10)
    board.add(_notification("a", task_id="t1"), now=T0)
    board.add(_notification("b", task_id="t2"), now=T0 + timedelta(seconds=5))

    gone = board.expire(now=T0 + timedelta(seconds=10))
    assert [t.reminder_id for t in gone] == ["a"]
    # The expired one can be shown again (e.g. after a snooze).
    assert board.add(_notification("a", task_id="t1"), now=T0 + timedelta(seconds=11))

    removed = board.remove_for_task("t2")
    assert [t.reminder_id for t in removed] == ["b"]
    assert board.remove("missing") is None
    board.clear()
    assert board.active(now=T0) == []


@pytest.mark.asyncio
async def test_dispatch_routes_by_type_and_adds_toast() -> None:
    in_app, push = FakeSink(name="os"), FakeSink(name="push")
    dispatcher = NotificationDispatcher(
        ToastBoard(), {ReminderType.IN_APP: [in_app], ReminderType.PUSH: [push]}
    )

    results = await dispatcher.emit(_notification("r1", type=ReminderType.PUSH))

    assert [(r.channel, r.success) for r in results] == [("push", True)]
    assert results[0].delivered_at is not None
    assert in_app.displayed == []
    assert len(push.displayed) == 1
    assert [t.reminder_id for t in dispatcher.toasts.active(now=T0)] == ["r1"]


@pytest.mark.asyncio
async def test_permission_is_asked_once() -> None:
    denied = FakeSink(name="os", granted=False)
    dispatcher = NotificationDispatcher(ToastBoard(), {ReminderType.IN_APP: [denied]})

    r1 = await dispatcher.emit(_notification("r1"))
    r2 = await dispatcher.emit(_notification("r2"))

    assert denied.permission_requests == 1
    assert [r.error for r in r1 + r2] == ["permission denied", "permission denied"]
    assert denied.displayed == []
    # Toasts still show in-app.
    assert len(dispatcher.toasts.active(now=T0)) == 2


@pytest.mark.asyncio
async def test_sink_failure_is_reported_not_raised() -> None:
    broken, ok = FakeSink(name="broken", fail=True), FakeSink(name="ok")
    dispatcher = NotificationDispatcher(ToastBoard(), {ReminderType.IN_APP: [broken, ok]})

    results = await dispatcher.emit(_notification())

    assert [(r.channel, r.success) for r in results] == [("broken", False), ("ok", True)]
    assert results[0].error == "sink exploded"
    assert len(ok.displayed) == 1


@pytest.mark.asyncio
async def test_missing_channel_sink() -> None:
    dispatcher = NotificationDispatcher(ToastBoard())

    email = await dispatcher.emit(_notification("r1", type=ReminderType.EMAIL))
    in_app = await dispatcher.emit(_notification("r2"))

    assert len(email) == 1 and not email[0].success
    assert email[0].channel == "none"
    assert in_app == []

    dispatcher.register(ReminderType.EMAIL, FakeSink(name="mail"))
    assert [s.name for s in dispatcher.sinks_for(ReminderType.EMAIL)] == ["mail"]
