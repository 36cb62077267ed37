# src/reminder_desk/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Components that run on the poller thread. Their INFO lines would interleave
# with the REPL prompt, and every fired reminder already shows up as a toast.
BACKGROUND_LOGGERS: tuple[str, ...] = (
    "reminder_desk.reminders.poller",
    "reminder_desk.reminders.session",
    "reminder_desk.connectors.matrix_push",
    "reminder_desk.connectors.matrix_client",
    "reminder_desk.connectors.email_sink",
)


class _ConsoleNoiseFilter(logging.Filter):
    """Console filter: app logs pass, background components need WARNING+, everything else ERROR+."""

    def __init__(self, background: tuple[str, ...] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._background = background

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("reminder_desk."):
            if name.startswith(self._background):
                return record.levelno >= logging.WARNING
            return True

        # py.warnings, nio, asyncio and the rest.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/reminder_desk",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered) plus a file handler with everything.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "reminder_desk.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # nio logs every HTTP round trip at DEBUG; one push per reminder does not need that in the file.
    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))

    return log_file
