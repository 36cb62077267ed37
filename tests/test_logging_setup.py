# tests/test_logging_setup.py

from __future__ import annotations

import logging

import pytest

from reminder_desk.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("reminder_desk.cli.commands", logging.INFO, True),
        ("reminder_desk.reminders.poller", logging.INFO, False),
        ("reminder_desk.reminders.poller", logging.WARNING, True),
        ("reminder_desk.connectors.matrix_push", logging.INFO, False),
        ("reminder_desk.connectors.email_sink", logging.ERROR, True),
        ("nio.responses", logging.WARNING, False),
        ("py.warnings", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_setup_logging_writes_file(tmp_path) -> None:
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs", console_level=logging.WARNING)
        logging.getLogger("reminder_desk.reminders.poller").debug("cycle done")
        for h in root.handlers:
            h.flush()

        assert log_file == tmp_path / "logs" / "reminder_desk.log"
        assert "cycle done" in log_file.read_text("utf-8")
        assert logging.getLogger("nio").level == logging.WARNING
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
        logging.captureWarnings(False)
        logging.getLogger("nio").setLevel(logging.NOTSET)
