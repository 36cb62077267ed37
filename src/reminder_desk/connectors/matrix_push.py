# src/reminder_desk/connectors/matrix_push.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..reminders.notify import ReminderNotification

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Awaitable[Any]]


class MatrixPushSink:
    """
    PUSH channel: post fired reminders into a Matrix room.

    The nio client is created lazily on the first push, inside the poller's
    event loop, and reused afterwards.
    """

    name = "matrix"

    def __init__(self, client_factory: ClientFactory, *, room_id: str) -> None:
        self._factory = client_factory
        self._room_id = (room_id or "").strip()
        self._client: Any | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> Any | None:
        async with self._lock:
            if self._client is None:
                self._client = await self._factory()
            return self._client

    async def request_permission(self) -> bool:
        if not self._room_id:
            logger.warning("Matrix push disabled: RDESK_MATRIX_PUSH_ROOM is not set")
            return False
        return await self._get_client() is not None

    async def display(self, notification: ReminderNotification) -> None:
        client = await self._get_client()
        if client is None:
            raise RuntimeError("Matrix client unavailable")

        text = notification.render_text()
        await client.room_send(
            room_id=self._room_id,
            message_type="m.room.message",
            content={
                "msgtype": "m.notice",
                "body": text,
                "reminder": notification.reminder.to_dto(),
            },
            ignore_unverified_devices=True,
        )
        logger.info("Reminder %s pushed to Matrix room %s", notification.reminder.id, self._room_id)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            with contextlib.suppress(Exception):
                await client.close()
