# tests/test_reminder_store.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reminder_desk.reminders.errors import InvalidScheduleError, InvalidStateError, NotFoundError
from reminder_desk.reminders.models import ReminderSpec, ReminderStatus, ReminderType
from reminder_desk.reminders.store import MAX_REMINDERS_PER_BATCH, compute_fire_at

from .conftest import DUE

NOW = DUE - timedelta(days=2)


@pytest.fixture()
def task(task_store):
    return task_store.add_task(user_id="u1", title="Write report", due_date=DUE)


@pytest.mark.parametrize("offset", [0, 5, 15, 30, 60, 1440])
def test_relative_offset_fire_at(reminder_store, task, offset: int) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=offset, now=NOW)
    assert r.fire_at == DUE - timedelta(minutes=offset)
    assert r.relative_offset == offset
    assert r.status == ReminderStatus.PENDING


def test_create_dto_shape(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=30, now=NOW)
    dto = r.to_dto()
    assert dto == {
        "id": r.id,
        "type": "IN_APP",
        "fireAt": "2025-03-10T14:30:00.000Z",
        "relativeOffset": 30,
        "status": "PENDING",
        "snoozedUntil": None,
        "snoozeCount": 0,
        "sentAt": None,
        "dismissedAt": None,
        "taskId": task.id,
        "userId": "u1",
    }


def test_compute_fire_at_requires_due_date() -> None:
    with pytest.raises(InvalidScheduleError):
        compute_fire_at(None, 15)


def test_relative_reminder_without_due_date_is_rejected(reminder_store, task_store) -> None:
    undated = task_store.add_task(user_id="u1", title="Someday")
    with pytest.raises(InvalidScheduleError):
        reminder_store.create(user_id="u1", task_id=undated.id, relative_offset=15, now=NOW)
    with pytest.raises(InvalidScheduleError):
        reminder_store.create(user_id="u1", task_id=undated.id, now=NOW)
    assert reminder_store.count_reminders() == 0


@pytest.mark.parametrize("offset", [-1, 525601, 1.5, True])
def test_invalid_relative_offset(reminder_store, task, offset) -> None:
    with pytest.raises(InvalidScheduleError):
        reminder_store.create(user_id="u1", task_id=task.id, relative_offset=offset, now=NOW)


def test_absolute_fire_at_and_default_to_due(reminder_store, task) -> None:
    at = datetime(2025, 3, 9, 8, 0, tzinfo=timezone.utc)
    r1 = reminder_store.create(user_id="u1", task_id=task.id, fire_at=at, type="email", now=NOW)
    assert r1.fire_at == at
    assert r1.relative_offset is None
    assert r1.type == ReminderType.EMAIL

    r2 = reminder_store.create(user_id="u1", task_id=task.id, now=NOW)
    assert r2.fire_at == DUE


def test_past_fire_at_is_accepted_and_due(reminder_store, task) -> None:
    past = NOW - timedelta(minutes=5)
    r = reminder_store.create(user_id="u1", task_id=task.id, fire_at=past, now=NOW)
    assert [x.id for x in reminder_store.list_due(NOW, user_id="u1")] == [r.id]


def test_unknown_or_foreign_task_is_not_found(reminder_store, task) -> None:
    with pytest.raises(NotFoundError):
        reminder_store.create(user_id="u1", task_id="missing", relative_offset=5, now=NOW)
    with pytest.raises(NotFoundError):
        reminder_store.create(user_id="intruder", task_id=task.id, relative_offset=5, now=NOW)


def test_create_many_is_bounded_and_atomic(reminder_store, task) -> None:
    specs = [ReminderSpec(relative_offset=m) for m in range(MAX_REMINDERS_PER_BATCH + 1)]
    with pytest.raises(ValueError):
        reminder_store.create_many(user_id="u1", task_id=task.id, specs=specs, now=NOW)

    # One bad spec rejects the whole batch.
    bad = [ReminderSpec(relative_offset=5), ReminderSpec(relative_offset=-3)]
    with pytest.raises(InvalidScheduleError):
        reminder_store.create_many(user_id="u1", task_id=task.id, specs=bad, now=NOW)
    assert reminder_store.count_reminders() == 0

    made = reminder_store.create_many(user_id="u1", task_id=task.id, specs=specs[:3], now=NOW)
    assert len(made) == 3
    assert len(reminder_store.list_for_task(task.id, user_id="u1")) == 3


def test_list_due_boundary(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    t = r.fire_at
    assert reminder_store.list_due(t - timedelta(seconds=10), user_id="u1") == []
    assert [x.id for x in reminder_store.list_due(t, user_id="u1")] == [r.id]
    assert [x.id for x in reminder_store.list_due(t + timedelta(seconds=10), user_id="u1")] == [r.id]
    assert reminder_store.list_due(t, user_id="someone-else") == []


def test_list_due_orders_by_effective_time(reminder_store, task) -> None:
    late = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=5, now=NOW)
    early = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=60, now=NOW)
    due = reminder_store.list_due(DUE, user_id="u1")
    assert [x.id for x in due] == [early.id, late.id]
    assert len(reminder_store.list_due(DUE, user_id="u1", limit=1)) == 1


def test_mark_sent_is_idempotent(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    first = DUE + timedelta(seconds=1)

    assert reminder_store.mark_sent(r.id, now=first) is True
    assert reminder_store.mark_sent(r.id, now=first + timedelta(minutes=1)) is False

    stored = reminder_store.get(r.id, user_id="u1")
    assert stored.status == ReminderStatus.SENT
    assert stored.sent_at == first
    assert reminder_store.list_due(first, user_id="u1") == []


def test_mark_sent_before_fire_time_is_a_no_op(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    assert reminder_store.mark_sent(r.id, now=NOW) is False
    assert reminder_store.get(r.id).status == ReminderStatus.PENDING
    with pytest.raises(NotFoundError):
        reminder_store.mark_sent("nope", now=NOW)


def test_dismiss_twice_keeps_first_timestamp(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    d1 = reminder_store.dismiss(r.id, user_id="u1", now=NOW)
    d2 = reminder_store.dismiss(r.id, user_id="u1", now=NOW + timedelta(hours=1))
    assert d1.status == d2.status == ReminderStatus.DISMISSED
    assert d2.dismissed_at == NOW


def test_dismissed_is_terminal(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    reminder_store.dismiss(r.id, user_id="u1", now=NOW)

    with pytest.raises(InvalidStateError):
        reminder_store.snooze(r.id, user_id="u1", minutes=5, now=NOW)
    assert reminder_store.mark_sent(r.id, now=DUE + timedelta(hours=1)) is False
    assert reminder_store.list_due(DUE + timedelta(hours=1), user_id="u1") == []
    assert reminder_store.get(r.id).status == ReminderStatus.DISMISSED


def test_snooze_then_fire_again(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    fired = DUE + timedelta(seconds=5)
    assert reminder_store.mark_sent(r.id, now=fired)

    s1 = reminder_store.snooze(r.id, user_id="u1", minutes=15, now=fired)
    assert s1.status == ReminderStatus.SNOOZED
    assert s1.snoozed_until == fired + timedelta(minutes=15)
    assert s1.snooze_count == 1
    assert s1.fire_at == DUE

    assert reminder_store.list_due(fired + timedelta(minutes=14), user_id="u1") == []
    again = fired + timedelta(minutes=15)
    assert [x.id for x in reminder_store.list_due(again, user_id="u1")] == [r.id]

    assert reminder_store.mark_sent(r.id, now=again)
    sent = reminder_store.get(r.id)
    assert sent.status == ReminderStatus.SENT
    assert sent.snoozed_until is None
    assert sent.snooze_count == 1


def test_snooze_count_is_monotonic(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    counts = []
    at = DUE + timedelta(seconds=1)
    assert reminder_store.mark_sent(r.id, now=at)
    for minutes in (5, 30, 60):
        s = reminder_store.snooze(r.id, user_id="u1", minutes=minutes, now=at)
        counts.append(s.snooze_count)
        at = s.snoozed_until + timedelta(seconds=1)
        assert reminder_store.mark_sent(r.id, now=at)
        assert reminder_store.get(r.id).snooze_count == s.snooze_count
    assert counts == [1, 2, 3]


@pytest.mark.parametrize("minutes", [0, -5, 10081])
def test_snooze_rejects_out_of_range_minutes(reminder_store, task, minutes: int) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    with pytest.raises(InvalidScheduleError):
        reminder_store.snooze(r.id, user_id="u1", minutes=minutes, now=NOW)


def test_snooze_until_must_be_future(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    with pytest.raises(InvalidScheduleError):
        reminder_store.snooze(r.id, user_id="u1", until=NOW - timedelta(seconds=1), now=NOW)
    with pytest.raises(InvalidScheduleError):
        reminder_store.snooze(r.id, user_id="u1", now=NOW)
    s = reminder_store.snooze(r.id, user_id="u1", until=NOW + timedelta(hours=2), now=NOW)
    assert s.snoozed_until == NOW + timedelta(hours=2)


def test_transitions_respect_owner(reminder_store, task) -> None:
    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    with pytest.raises(NotFoundError):
        reminder_store.snooze(r.id, user_id="intruder", minutes=5, now=NOW)
    with pytest.raises(NotFoundError):
        reminder_store.dismiss(r.id, user_id="intruder", now=NOW)
    with pytest.raises(NotFoundError):
        reminder_store.get(r.id, user_id="intruder")
    assert reminder_store.delete(r.id, user_id="intruder") is False


def test_list_reminders_filters_and_pages(reminder_store, task) -> None:
    made = [
        reminder_store.create(user_id="u1", task_id=task.id, relative_offset=m, now=NOW)
        for m in (0, 5, 15, 30, 60)
    ]
    reminder_store.dismiss(made[0].id, user_id="u1", now=NOW)

    page = reminder_store.list_reminders(user_id="u1", limit=2, offset=0)
    assert page.total == 5
    assert [r.id for r in page.reminders] == [made[4].id, made[3].id]

    page2 = reminder_store.list_reminders(user_id="u1", limit=2, offset=4)
    assert [r.id for r in page2.reminders] == [made[0].id]

    pending = reminder_store.list_reminders(user_id="u1", status=ReminderStatus.PENDING)
    assert pending.total == 4

    desc = reminder_store.list_reminders(user_id="u1", sort_order="desc", limit=1)
    assert desc.reminders[0].id == made[0].id

    with pytest.raises(ValueError):
        reminder_store.list_reminders(user_id="u1", limit=101)
    with pytest.raises(ValueError):
        reminder_store.list_reminders(user_id="u1", sort_by="title")


def test_count_by_status_and_cascades(reminder_store, task) -> None:
    a = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=0, now=NOW)
    b = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=5, now=NOW)
    reminder_store.snooze(b.id, user_id="u1", minutes=5, now=NOW)

    counts = reminder_store.count_by_status("u1")
    assert counts[ReminderStatus.PENDING] == 1
    assert counts[ReminderStatus.SNOOZED] == 1
    assert counts[ReminderStatus.SENT] == 0

    assert sorted(reminder_store.dismiss_for_task(task.id, user_id="u1", now=NOW)) == sorted([a.id, b.id])
    assert reminder_store.get(b.id).snoozed_until is None
    assert reminder_store.dismiss_for_task(task.id, user_id="u1", now=NOW) == []

    assert reminder_store.delete_many([a.id, "missing"], user_id="u1") == 1
    assert reminder_store.delete_for_task(task.id) == 1
    assert reminder_store.count_reminders() == 0


def test_reopening_the_database_keeps_reminders(settings, task_store, reminder_store, task) -> None:
    from reminder_desk.reminders.store import ReminderStore

    r = reminder_store.create(user_id="u1", task_id=task.id, relative_offset=15, now=NOW)
    again = ReminderStore(settings.reminders_db_path, tasks=task_store)
    assert again.get(r.id).fire_at == DUE - timedelta(minutes=15)
