# src/reminder_desk/reminders/errors.py

from __future__ import annotations


class ReminderError(Exception):
    """Base class for reminder store errors. `http_status` is the suggested API mapping."""

    http_status = 500


class NotFoundError(ReminderError):
    """Reminder/task does not exist or is not owned by the caller."""

    http_status = 404


class InvalidScheduleError(ReminderError):
    """Requested or computed fire/snooze time is unusable."""

    http_status = 400


class InvalidStateError(ReminderError):
    """Transition is not allowed from the reminder's current status."""

    http_status = 400
