# src/reminder_desk/reminders/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Quick-snooze choices, in minutes. 1440 = one day.
SNOOZE_PRESETS: tuple[int, ...] = (5, 15, 30, 60, 1440)

MIN_SNOOZE_MINUTES = 1
MAX_SNOOZE_MINUTES = 10080  # one week
MAX_RELATIVE_OFFSET = 525600  # one year

# Relative offsets (minutes before the task's due date).
REMINDER_PRESETS: dict[str, int] = {
    "at_deadline": 0,
    "5min_before": 5,
    "15min_before": 15,
    "30min_before": 30,
    "1hour_before": 60,
    "1day_before": 1440,
}

PRESET_LABELS: dict[str, str] = {
    "at_deadline": "At time of task",
    "5min_before": "5 minutes before",
    "15min_before": "15 minutes before",
    "30min_before": "30 minutes before",
    "1hour_before": "1 hour before",
    "1day_before": "1 day before",
}


class ReminderType(StrEnum):
    """Delivery channel, fixed at creation."""

    IN_APP = "IN_APP"
    PUSH = "PUSH"
    EMAIL = "EMAIL"

    @classmethod
    def parse(cls, raw: str | ReminderType | None) -> ReminderType:
        if raw is None or raw == "":
            return cls.IN_APP
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            raise ValueError(f"unknown reminder type: {raw!r}") from None


class ReminderStatus(StrEnum):
    """
    Reminder lifecycle status.

    PENDING -> SENT | SNOOZED | DISMISSED
    SNOOZED -> SENT | SNOOZED | DISMISSED
    SENT    -> SNOOZED | DISMISSED
    DISMISSED is terminal.
    """

    PENDING = "PENDING"
    SENT = "SENT"
    DISMISSED = "DISMISSED"
    SNOOZED = "SNOOZED"

    @classmethod
    def from_db(cls, raw: str | None) -> ReminderStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self is ReminderStatus.DISMISSED


# Statuses the poller looks at.
ACTIVE_STATUSES: tuple[ReminderStatus, ...] = (ReminderStatus.PENDING, ReminderStatus.SNOOZED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_ms(dt: datetime) -> int:
    return (as_utc(dt) - EPOCH) // timedelta(milliseconds=1)


def ms_to_dt(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(ms))


def from_ms(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return ms_to_dt(ms)


def iso_z(dt: datetime | None) -> str | None:
    """ISO-8601 UTC with millisecond precision and a Z suffix (2025-03-10T14:30:00.000Z)."""
    if dt is None:
        return None
    return as_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(raw: str) -> datetime:
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


@dataclass(slots=True)
class Reminder:
    id: str
    task_id: str
    user_id: str
    type: ReminderType
    fire_at: datetime
    relative_offset: int | None
    status: ReminderStatus
    snoozed_until: datetime | None
    snooze_count: int
    sent_at: datetime | None
    dismissed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def effective_fire_at(self) -> datetime:
        """snoozed_until while SNOOZED, else fire_at."""
        if self.status == ReminderStatus.SNOOZED and self.snoozed_until is not None:
            return self.snoozed_until
        return self.fire_at

    def is_due(self, now: datetime) -> bool:
        return self.status in ACTIVE_STATUSES and self.effective_fire_at <= as_utc(now)

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "fireAt": iso_z(self.fire_at),
            "relativeOffset": self.relative_offset,
            "status": self.status.value,
            "snoozedUntil": iso_z(self.snoozed_until),
            "snoozeCount": self.snooze_count,
            "sentAt": iso_z(self.sent_at),
            "dismissedAt": iso_z(self.dismissed_at),
            "taskId": self.task_id,
            "userId": self.user_id,
        }


@dataclass(slots=True, frozen=True)
class ReminderPage:
    reminders: list[Reminder]
    total: int
    limit: int
    offset: int


@dataclass(slots=True, frozen=True)
class ReminderSpec:
    """One reminder to create: either an absolute fire time or an offset before the due date."""

    type: ReminderType = ReminderType.IN_APP
    fire_at: datetime | None = None
    relative_offset: int | None = None
