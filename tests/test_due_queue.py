# tests/test_due_queue.py

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from reminder_desk.reminders.due_queue import ReminderDueQueue
from reminder_desk.reminders.models import Reminder, ReminderStatus, ReminderType

T0 = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)


def _reminder(rid: str, minutes: int, *, user_id: str = "u1") -> Reminder:
    return Reminder(
        id=rid,
        task_id="t1",
        user_id=user_id,
        type=ReminderType.IN_APP,
        fire_at=T0 + timedelta(minutes=minutes),
        relative_offset=None,
        status=ReminderStatus.PENDING,
        snoozed_until=None,
        snooze_count=0,
        sent_at=None,
        dismissed_at=None,
        created_at=T0,
        updated_at=T0,
    )


def test_list_due_in_fire_order_without_popping() -> None:
    q = ReminderDueQueue([_reminder("late", 20), _reminder("early", 5), _reminder("other", 1, user_id="u2")])

    assert q.next_fire_at() == T0 + timedelta(minutes=1)
    due = q.list_due(T0 + timedelta(minutes=30), user_id="u1")
    assert [r.id for r in due] == ["early", "late"]
    assert len(q) == 3
    assert q.list_due(T0, user_id="u1") == []
    assert [r.id for r in q.list_due(T0 + timedelta(minutes=30), limit=1)] == ["other"]


def test_snoozed_version_replaces_old_entry() -> None:
    r = _reminder("r1", 0)
    q = ReminderDueQueue([r])

    snoozed = replace(
        r, status=ReminderStatus.SNOOZED, snoozed_until=T0 + timedelta(minutes=15), snooze_count=1
    )
    q.push(snoozed)

    assert q.list_due(T0 + timedelta(minutes=10)) == []
    assert q.next_fire_at() == T0 + timedelta(minutes=15)
    assert [x.snooze_count for x in q.list_due(T0 + timedelta(minutes=15))] == [1]


def test_inactive_and_discarded_entries_disappear() -> None:
    a, b = _reminder("a", 0), _reminder("b", 1)
    q = ReminderDueQueue([a, b])

    q.push(replace(a, status=ReminderStatus.DISMISSED))
    q.discard("b")

    assert len(q) == 0
    assert q.next_fire_at() is None
    assert q.pop_due(T0 + timedelta(hours=1)) == []


def test_pop_due_removes_only_due() -> None:
    q = ReminderDueQueue([_reminder("a", 0), _reminder("b", 10)])

    popped = q.pop_due(T0 + timedelta(minutes=5))

    assert [r.id for r in popped] == ["a"]
    assert len(q) == 1
    assert q.next_fire_at() == T0 + timedelta(minutes=10)
