# src/reminder_desk/reminders/due_queue.py

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from collections.abc import Iterable
from datetime import datetime

from .models import ACTIVE_STATUSES, Reminder, as_utc, to_ms

logger = logging.getLogger(__name__)


class ReminderDueQueue:
    """
    Min-heap of active reminders keyed by effective fire time.

    A drop-in DueSource for a server-side loop that keeps reminders in memory
    instead of querying SQL every tick. Entries are invalidated lazily: each
    reminder id maps to its latest version (snooze_count + status), and heap
    entries carrying an older version are discarded when they surface.

    The store stays the source of truth; the poller still calls mark_sent on it.
    Keeping the queue current is split between the two callers: poll_once
    discard()s every id it hands over to the store, and ReminderSession
    push()es the new version after a snooze (and discard()s on dismiss).
    Reminders created after load() must be push()ed by whoever creates them.
    """

    def __init__(self, reminders: Iterable[Reminder] = ()) -> None:
        self._heap: list[tuple[int, int, str]] = []
        self._latest: dict[str, tuple[Reminder, int]] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self.load(reminders)

    def __len__(self) -> int:
        with self._lock:
            return len(self._latest)

    def load(self, reminders: Iterable[Reminder]) -> int:
        """Upsert a batch (e.g. everything PENDING/SNOOZED from the store)."""
        n = 0
        for r in reminders:
            self.push(r)
            n += 1
        return n

    def push(self, reminder: Reminder) -> None:
        """Insert or replace a reminder; inactive ones are simply removed."""
        with self._lock:
            if reminder.status not in ACTIVE_STATUSES:
                self._latest.pop(reminder.id, None)
                return
            seq = next(self._seq)
            self._latest[reminder.id] = (reminder, seq)
            heapq.heappush(self._heap, (to_ms(reminder.effective_fire_at), seq, reminder.id))

    def discard(self, reminder_id: str) -> None:
        with self._lock:
            self._latest.pop(reminder_id, None)

    def next_fire_at(self) -> datetime | None:
        """Earliest effective fire time still queued (what a sleep-until loop would wait for)."""
        with self._lock:
            self._drop_stale_head()
            if not self._heap:
                return None
            reminder, _ = self._latest[self._heap[0][2]]
            return reminder.effective_fire_at

    def _drop_stale_head(self) -> None:
        while self._heap:
            _, seq, rid = self._heap[0]
            current = self._latest.get(rid)
            if current is not None and current[1] == seq:
                return
            heapq.heappop(self._heap)

    def list_due(
            self,
            now: datetime,
            *,
            user_id: str | None = None,
            task_id: str | None = None,
            limit: int = 50,
    ) -> list[Reminder]:
        """
        Same contract as ReminderStore.list_due. Due entries are not popped:
        the poller's mark_sent decides and then discard()s what it handled.
        """
        now_ms = to_ms(as_utc(now))
        out: list[Reminder] = []
        with self._lock:
            self._drop_stale_head()
            for fire_ms, seq, rid in sorted(self._heap):
                if fire_ms > now_ms or len(out) >= int(limit):
                    break
                current = self._latest.get(rid)
                if current is None or current[1] != seq:
                    continue
                reminder = current[0]
                if user_id is not None and reminder.user_id != user_id:
                    continue
                if task_id is not None and reminder.task_id != task_id:
                    continue
                out.append(reminder)
        return out

    def pop_due(self, now: datetime) -> list[Reminder]:
        """Remove and return every reminder due at `now`, oldest first."""
        now_ms = to_ms(as_utc(now))
        out: list[Reminder] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now_ms:
                _, seq, rid = heapq.heappop(self._heap)
                current = self._latest.get(rid)
                if current is None or current[1] != seq:
                    continue
                del self._latest[rid]
                out.append(current[0])
        if out:
            logger.debug("ReminderDueQueue popped %d due reminder(s)", len(out))
        return out
