# src/reminder_desk/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the reminder poller in a background thread,
- console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.background import PollerBackgroundRunner, start_poller_in_background
from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.notified.save()
    except Exception:
        logger.exception("Failed to save notified reminders.")

    # Both stores use short-lived sqlite connections per call; close() is a no-op hook.
    for store in (state.reminder_store, state.task_store):
        try:
            if hasattr(store, "close"):
                store.close()
        except Exception:
            logger.debug("Store close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/reminder_desk")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "reminder-desk"))

    state = create_initial_state(settings=settings)

    poller: PollerBackgroundRunner | None = start_poller_in_background(state)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError):
        # Not on the main thread, or the platform lacks the signal.
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the reminder poller only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if poller is not None:
            poller.stop()
            poller.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
