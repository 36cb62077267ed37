# src/reminder_desk/cli/background.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..reminders.models import ReminderType

logger = logging.getLogger(__name__)


@dataclass
class PollerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal poller stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _close_sinks(state: AppState) -> None:
    for channel in ReminderType:
        for sink in state.session.dispatcher.sinks_for(channel):
            close = getattr(sink, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception:
                logger.debug("Closing sink %s failed.", getattr(sink, "name", sink), exc_info=True)


async def _run_poller(state: AppState, stop_event: asyncio.Event) -> None:
    session = state.session
    session.start()
    logger.info("Reminder poller running (user=%s, every %.1fs).", session.user_id, session.interval_seconds)
    try:
        await stop_event.wait()
    finally:
        await session.stop()
        await _close_sinks(state)


def start_poller_in_background(state: AppState) -> PollerBackgroundRunner | None:
    """
    Run the reminder poller in a background thread with its own event loop.

    The console REPL blocks on input(), so the poller cannot share its thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_poller(state, stop_event))
        except Exception:
            logger.exception("Reminder poller thread crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="reminder-poller", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Poller thread did not initialize properly.")
        return None

    logger.info("Poller background thread started.")
    return PollerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
