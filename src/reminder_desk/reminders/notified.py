# src/reminder_desk/reminders/notified.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from collections import OrderedDict
from pathlib import Path

from .models import Reminder

logger = logging.getLogger(__name__)


class NotifiedCache:
    """
    Session-scoped "already notified" set.

    Keyed by reminder id; the value is the snooze_count of the occurrence that
    was shown. A reminder counts as notified only while its snooze_count has
    not moved past the recorded one, so a snoozed reminder fires again.

    Lifecycle:
    - hydrate() on session start (from the JSON file, best-effort)
    - record()/forget() while polling and on user actions
    - clear() on logout
    Bounded: least recently recorded ids are evicted beyond max_items.
    """

    def __init__(self, path: str | Path | None = None, *, max_items: int = 500) -> None:
        self._path = Path(path) if path else None
        self._max = max(1, int(max_items))
        self._items: OrderedDict[str, int] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, reminder_id: object) -> bool:
        with self._lock:
            return reminder_id in self._items

    def seen(self, reminder: Reminder) -> bool:
        with self._lock:
            count = self._items.get(reminder.id)
        return count is not None and count >= reminder.snooze_count

    def record(self, reminder: Reminder) -> None:
        with self._lock:
            self._items[reminder.id] = int(reminder.snooze_count)
            self._items.move_to_end(reminder.id)
            while len(self._items) > self._max:
                evicted, _ = self._items.popitem(last=False)
                logger.debug("NotifiedCache evicted %s", evicted)
        self.save()

    def forget(self, reminder_id: str) -> None:
        """Drop an id once its reminder is terminal (dismissed/deleted)."""
        with self._lock:
            removed = self._items.pop(reminder_id, None) is not None
        if removed:
            self.save()

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            if self._path is not None:
                with contextlib.suppress(FileNotFoundError):
                    self._path.unlink()
        logger.info("NotifiedCache cleared")

    # ---- persistence ----

    def hydrate(self) -> int:
        if self._path is None or not self._path.exists():
            return 0
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to load notified reminders from %s", self._path)
            return 0

        loaded: OrderedDict[str, int] = OrderedDict()
        if isinstance(data, dict):
            for key, val in data.items():
                if isinstance(key, str) and isinstance(val, int) and not isinstance(val, bool):
                    loaded[key] = val
        elif isinstance(data, list):
            # Plain list of ids: treat as first occurrences.
            for key in data:
                if isinstance(key, str):
                    loaded[key] = 0

        with self._lock:
            self._items = loaded
            while len(self._items) > self._max:
                self._items.popitem(last=False)
            n = len(self._items)
        logger.info("Loaded %d notified reminder(s) from %s", n, self._path)
        return n

    def save(self) -> None:
        if self._path is None:
            return
        # Poller and console threads both save; one writer at a time owns the .tmp file.
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._path.with_suffix(".tmp")
                tmp.write_text(json.dumps(dict(self._items), ensure_ascii=False), "utf-8")
                os.replace(tmp, self._path)
            except Exception:
                logger.exception("Failed to save notified reminders to %s", self._path)
