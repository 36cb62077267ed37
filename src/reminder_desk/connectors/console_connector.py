# src/reminder_desk/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..reminders.notify import ReminderNotification

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotificationSink:
    """
    OS-level notification for the terminal: a bell plus a highlighted line.

    Permission is the RDESK_OS_NOTIFICATIONS switch (and a TTY-less stdout
    still gets the line, just no bell).
    """

    name = "console"

    def __init__(self, *, enabled: bool = True, bell: bool = True) -> None:
        self.enabled = enabled
        self.bell = bell

    async def request_permission(self) -> bool:
        return self.enabled

    async def display(self, notification: ReminderNotification) -> None:
        rid = notification.reminder.id
        line = f"[REMINDER] {notification.render_text()}  (/snooze {rid} 15 | /dismiss {rid})"
        try:
            if self.bell and sys.stdout.isatty():
                sys.stdout.write("\a")
        except Exception:
            logger.debug("Console bell failed.", exc_info=True)
        _print_ts(line)


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (user=%s).", state.user_id)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        _print_ts(text)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            with state.lock:
                response = command_registry.handle(state, user_input, user_id=state.user_id, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list available commands."
        _print_ts(response)

        if user_input.split()[0].lower() == "/logout":
            break

    logger.info("Console connector finished.")
