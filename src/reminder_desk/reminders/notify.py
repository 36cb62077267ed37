# src/reminder_desk/reminders/notify.py

from __future__ import annotations

"""
Notification delivery.

A fired reminder becomes a ReminderNotification and fans out to:
- the in-process ToastBoard (ordered by arrival, one toast per reminder),
- the channel sinks registered for the reminder's type
  (IN_APP -> OS-level sinks, PUSH -> chat push, EMAIL -> mail),
  each gated by the sink's own permission answer.

Delivery failures are reported as ReminderDeliveryResult, never raised.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..core.ports import NotificationSink
from .models import Reminder, ReminderType, as_utc, iso_z, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TOAST_TIMEOUT_SECONDS = 10.0


@dataclass(slots=True, frozen=True)
class ReminderNotification:
    reminder: Reminder
    task_title: str
    task_due_date: datetime | None
    fired_at: datetime

    @property
    def reminder_id(self) -> str:
        return self.reminder.id

    def render_text(self) -> str:
        text = f"Reminder: {self.task_title or 'Untitled Task'}"
        if self.task_due_date is not None:
            text += f" (due {iso_z(self.task_due_date)})"
        return text


@dataclass(slots=True, frozen=True)
class ReminderDeliveryResult:
    success: bool
    reminder_id: str
    type: ReminderType
    channel: str
    delivered_at: datetime | None = None
    error: str | None = None


@dataclass(slots=True)
class Toast:
    notification: ReminderNotification
    shown_at: datetime
    expires_at: datetime

    @property
    def reminder_id(self) -> str:
        return self.notification.reminder.id

    @property
    def task_id(self) -> str:
        return self.notification.reminder.task_id


class ToastBoard:
    """
    In-process list of visible reminder toasts.

    Auto-expiry only hides a toast; the reminder itself is left as it is.
    """

    def __init__(self, *, timeout_seconds: float = DEFAULT_TOAST_TIMEOUT_SECONDS) -> None:
        self._timeout = timedelta(seconds=max(0.0, float(timeout_seconds)))
        self._toasts: list[Toast] = []
        self._lock = threading.Lock()

    def add(self, notification: ReminderNotification, *, now: datetime | None = None) -> bool:
        now = as_utc(now or utc_now())
        with self._lock:
            self._toasts = [t for t in self._toasts if t.expires_at > now]
            if any(t.reminder_id == notification.reminder.id for t in self._toasts):
                return False
            self._toasts.append(Toast(notification=notification, shown_at=now, expires_at=now + self._timeout))
            return True

    def remove(self, reminder_id: str) -> Toast | None:
        with self._lock:
            for i, t in enumerate(self._toasts):
                if t.reminder_id == reminder_id:
                    return self._toasts.pop(i)
        return None

    def remove_for_task(self, task_id: str) -> list[Toast]:
        with self._lock:
            gone = [t for t in self._toasts if t.task_id == task_id]
            self._toasts = [t for t in self._toasts if t.task_id != task_id]
        return gone

    def expire(self, *, now: datetime | None = None) -> list[Toast]:
        now = as_utc(now or utc_now())
        with self._lock:
            gone = [t for t in self._toasts if t.expires_at <= now]
            self._toasts = [t for t in self._toasts if t.expires_at > now]
        for t in gone:
            logger.debug("Toast for reminder %s expired", t.reminder_id)
        return gone

    def active(self, *, now: datetime | None = None) -> list[Toast]:
        self.expire(now=now)
        with self._lock:
            return list(self._toasts)

    def clear(self) -> None:
        with self._lock:
            self._toasts.clear()


class NotificationDispatcher:
    """Fan a fired reminder out to the toast board and its channel sinks."""

    def __init__(
            self,
            toasts: ToastBoard,
            channels: dict[ReminderType, Iterable[NotificationSink]] | None = None,
    ) -> None:
        self.toasts = toasts
        self._channels: dict[ReminderType, list[NotificationSink]] = {
            t: list((channels or {}).get(t, ())) for t in ReminderType
        }
        self._permissions: dict[int, bool] = {}

    def register(self, channel: ReminderType, sink: NotificationSink) -> None:
        self._channels[ReminderType.parse(channel)].append(sink)

    def sinks_for(self, channel: ReminderType) -> list[NotificationSink]:
        return list(self._channels.get(channel, []))

    async def _permitted(self, sink: NotificationSink) -> bool:
        key = id(sink)
        cached = self._permissions.get(key)
        if cached is not None:
            return cached
        granted = bool(await sink.request_permission())
        self._permissions[key] = granted
        if not granted:
            logger.info("Notification sink %s: permission denied", getattr(sink, "name", sink))
        return granted

    async def emit(self, notification: ReminderNotification) -> list[ReminderDeliveryResult]:
        reminder = notification.reminder
        self.toasts.add(notification, now=notification.fired_at)

        sinks = self._channels.get(reminder.type, [])
        if not sinks:
            if reminder.type != ReminderType.IN_APP:
                logger.warning("No sink configured for %s reminder %s", reminder.type.value, reminder.id)
                return [
                    ReminderDeliveryResult(
                        success=False,
                        reminder_id=reminder.id,
                        type=reminder.type,
                        channel="none",
                        error=f"no {reminder.type.value} sink configured",
                    )
                ]
            return []

        results: list[ReminderDeliveryResult] = []
        for sink in sinks:
            name = str(getattr(sink, "name", type(sink).__name__))
            try:
                if not await self._permitted(sink):
                    results.append(
                        ReminderDeliveryResult(
                            success=False,
                            reminder_id=reminder.id,
                            type=reminder.type,
                            channel=name,
                            error="permission denied",
                        )
                    )
                    continue
                await sink.display(notification)
                results.append(
                    ReminderDeliveryResult(
                        success=True,
                        reminder_id=reminder.id,
                        type=reminder.type,
                        channel=name,
                        delivered_at=utc_now(),
                    )
                )
            except Exception as e:
                logger.exception("Notification sink %s failed for reminder %s", name, reminder.id)
                results.append(
                    ReminderDeliveryResult(
                        success=False,
                        reminder_id=reminder.id,
                        type=reminder.type,
                        channel=name,
                        error=str(e) or type(e).__name__,
                    )
                )
        return results
