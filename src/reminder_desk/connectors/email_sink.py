# src/reminder_desk/connectors/email_sink.py

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText

from ..reminders.models import iso_z
from ..reminders.notify import ReminderNotification

logger = logging.getLogger(__name__)


class EmailSink:
    """EMAIL channel: one plain-text mail per fired reminder over SMTP."""

    name = "email"

    def __init__(
        self,
        *,
        host: str,
        port: int = 25,
        sender: str,
        recipients: list[str],
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.sender = sender
        self.recipients = [r for r in recipients if r]
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> EmailSink:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            recipients=list(settings.email_to),
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    async def request_permission(self) -> bool:
        if not self.host or not self.sender or not self.recipients:
            logger.warning("Email sink disabled: SMTP host/sender/recipients missing")
            return False
        return True

    def build_message(self, notification: ReminderNotification) -> MIMEText:
        reminder = notification.reminder
        lines = [
            notification.render_text(),
            "",
            f"Fired at: {iso_z(notification.fired_at)}",
            f"Task id: {reminder.task_id}",
            f"Reminder id: {reminder.id}",
        ]
        if reminder.snooze_count:
            lines.append(f"Snoozed {reminder.snooze_count} time(s)")
        msg = MIMEText("\n".join(lines), "plain", "utf-8")
        msg["Subject"] = f"Task reminder: {notification.task_title or 'Untitled Task'}"
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        return msg

    def _send(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.sender, self.recipients, msg.as_string())

    async def display(self, notification: ReminderNotification) -> None:
        msg = self.build_message(notification)
        # smtplib blocks; keep the poller loop responsive.
        await asyncio.to_thread(self._send, msg)
        logger.info("Reminder %s mailed to %d recipient(s)", notification.reminder.id, len(self.recipients))
