# src/reminder_desk/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import cast

from ..core.state import AppState
from ..reminders.api import add_preset_reminder, batch_reminders, find_reminder, reminder_summary, status_counts
from ..reminders.errors import ReminderError
from ..reminders.models import (
    PRESET_LABELS,
    REMINDER_PRESETS,
    SNOOZE_PRESETS,
    Reminder,
    ReminderStatus,
    ReminderType,
    iso_z,
    parse_iso,
    utc_now,
)
from ..tasks.task_api import delete_task_with_reminders, reschedule_task

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], str], str]
CommandHandler4 = Callable[[AppState, list[str], str, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /remind, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        owner = user_id or state.user_id

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        try:
            if nparams >= 4:
                h4 = cast(CommandHandler4, handler)
                return h4(state, args, owner, emit)
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, owner)
        except ReminderError as e:
            logger.info("/%s rejected: %s", name, e)
            return f"Error: {e}"
        except ValueError as e:
            return f"Invalid input: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def parse_when(token: str, *, now: datetime | None = None) -> datetime | None:
    """
    "+30"  -> 30 minutes from now
    "none" -> None
    anything else -> ISO-8601 (Z or offset; naive means UTC)
    """
    token = token.strip()
    if token.lower() in ("none", "-"):
        return None
    if token.startswith("+"):
        return (now or utc_now()) + timedelta(minutes=int(token[1:]))
    return parse_iso(token)


def _fmt_reminder(r: Reminder) -> str:
    line = f"{r.id} [{r.status.value}] {r.type.value} fires {iso_z(r.effective_fire_at)}"
    if r.relative_offset is not None:
        line += f" ({r.relative_offset} min before due)"
    if r.snooze_count:
        line += f" snoozed x{r.snooze_count}"
    return line + f" task={r.task_id}"


def cmd_help(state: AppState, args: list[str], user_id: str) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], user_id: str) -> str:
    counts = status_counts(state, user_id=user_id)
    session = state.session
    channels = ", ".join(
        f"{t.value}={'+'.join(s.name for s in session.dispatcher.sinks_for(t)) or '-'}" for t in ReminderType
    )
    return (
        "Status:\n"
        f"  User: {user_id}\n"
        f"  Poller: {'running' if session.running else 'stopped'} every {session.interval_seconds:g}s\n"
        f"  Reminders: " + ", ".join(f"{k}={v}" for k, v in counts.items()) + "\n"
        f"  Channels: {channels}\n"
        f"  Completing a task dismisses its reminders: {'yes' if session.complete_task_dismisses_reminders else 'no'}"
    )


def cmd_task(state: AppState, args: list[str], user_id: str) -> str:
    """
    /task add <title...> [@+MIN | @ISO]
    /task due <task_id> <+MIN | ISO | none>
    /task rm <task_id>
    """
    usage = "Usage: /task add <title> [@+MIN|@ISO] | /task due <id> <+MIN|ISO|none> | /task rm <id>"
    if not args:
        return usage

    sub = args[0].lower()

    if sub == "add":
        words = args[1:]
        due = None
        if words and words[-1].startswith("@"):
            due = parse_when(words[-1][1:])
            words = words[:-1]
        title = " ".join(words).strip()
        if not title:
            return usage
        task = state.task_store.add_task(user_id=user_id, title=title, due_date=due)
        due_s = iso_z(task.due_date) if task.due_date else "no due date"
        return f"Task {task.id} created ({due_s})."

    if sub == "due" and len(args) >= 3:
        due = parse_when(args[2])
        if not reschedule_task(state, args[1], due, user_id=user_id):
            return f"Task {args[1]} not found."
        return f"Task {args[1]} due {iso_z(due) if due else 'never'}. Existing reminders keep their times."

    if sub in ("rm", "del", "delete") and len(args) >= 2:
        if not delete_task_with_reminders(state, args[1], user_id=user_id):
            return f"Task {args[1]} not found."
        return f"Task {args[1]} and its reminders deleted."

    return usage


def cmd_tasks(state: AppState, args: list[str], user_id: str) -> str:
    include_done = bool(args and args[0].lower() == "all")
    tasks = state.task_store.list_tasks(user_id, include_completed=include_done)
    if not tasks:
        return "No tasks."
    lines = ["Tasks:"]
    for t in tasks:
        mark = "x" if t.is_completed else " "
        due = iso_z(t.due_date) if t.due_date else "-"
        lines.append(f"  [{mark}] {t.id} due {due}  {t.title}")
    return "\n".join(lines)


def cmd_done(state: AppState, args: list[str], user_id: str) -> str:
    if not args:
        return "Usage: /done <task_id>"
    task_id = args[0]
    if state.task_store.get_task(task_id, user_id=user_id) is None:
        return f"Task {task_id} not found."
    dismissed = state.session.complete_task(task_id)
    reply = f"Task {task_id} completed."
    if dismissed:
        reply += f" Dismissed {dismissed} reminder(s)."
    return reply


def cmd_remind(state: AppState, args: list[str], user_id: str) -> str:
    """
    /remind <task_id> <preset | MIN | +MIN | at:ISO> [in_app|push|email]

    preset/MIN are minutes before the task's due date; +MIN and at:ISO are absolute.
    """
    presets = ", ".join(f"{name} = {PRESET_LABELS[name].lower()}" for name in REMINDER_PRESETS)
    usage = f"Usage: /remind <task_id> <preset|MIN|+MIN|at:ISO> [in_app|push|email]  (presets: {presets})"
    if len(args) < 2:
        return usage

    task_id, when = args[0], args[1]
    rtype = ReminderType.parse(args[2]) if len(args) >= 3 else ReminderType.IN_APP

    if when in REMINDER_PRESETS:
        reminder = add_preset_reminder(state, task_id=task_id, preset=when, type=rtype, user_id=user_id)
    elif when.startswith("+") or when.lower().startswith("at:"):
        fire_at = parse_when(when[3:] if when.lower().startswith("at:") else when)
        if fire_at is None:
            return usage
        reminder = state.reminder_store.create(user_id=user_id, task_id=task_id, type=rtype, fire_at=fire_at)
    elif when.isdigit():
        reminder = state.reminder_store.create(
            user_id=user_id, task_id=task_id, type=rtype, relative_offset=int(when)
        )
    else:
        return usage

    return f"Reminder created: {_fmt_reminder(reminder)}"


def cmd_reminders(state: AppState, args: list[str], user_id: str) -> str:
    """/reminders [STATUS] [task_id]"""
    status = None
    task_id = None
    for a in args:
        if a.upper() in ReminderStatus.__members__:
            status = ReminderStatus(a.upper())
        else:
            task_id = a
    page = state.reminder_store.list_reminders(user_id=user_id, status=status, task_id=task_id, limit=100)
    if not page.reminders:
        return "No reminders."
    lines = [f"Reminders ({len(page.reminders)} of {page.total}):"]
    lines.extend(f"  {_fmt_reminder(r)}" for r in page.reminders)
    return "\n".join(lines)


def cmd_show(state: AppState, args: list[str], user_id: str) -> str:
    if not args:
        return "Usage: /show <reminder_id>"
    reminder = find_reminder(state, args[0], user_id=user_id)
    if reminder is None:
        return f"Reminder {args[0]} not found."
    view = reminder_summary(state, reminder)
    flags = [name for name in ("isOverdue", "isSnoozed") if view[name]]
    return (
        f"{view['taskTitle']}: {view['type']} {view['status']} fires {view['fireAt']}"
        f" (task due {view['taskDueDate'] or '-'})" + (f" [{', '.join(flags)}]" if flags else "")
    )


def cmd_snooze(state: AppState, args: list[str], user_id: str) -> str:
    presets = "/".join(str(m) for m in SNOOZE_PRESETS)
    if not args:
        return f"Usage: /snooze <reminder_id> [minutes ({presets}) | until:ISO]"
    rid = args[0]
    if len(args) >= 2 and args[1].lower().startswith("until:"):
        reminder = state.session.snooze_toast(rid, until=parse_iso(args[1][6:]))
    else:
        minutes = int(args[1]) if len(args) >= 2 else 15
        reminder = state.session.snooze_toast(rid, minutes=minutes)
    return f"Snoozed until {iso_z(reminder.snoozed_until)} (snoozed x{reminder.snooze_count})."


def cmd_dismiss(state: AppState, args: list[str], user_id: str) -> str:
    if not args:
        return "Usage: /dismiss <reminder_id>"
    reminder = state.session.dismiss_toast(args[0])
    return f"Reminder {reminder.id} dismissed at {iso_z(reminder.dismissed_at)}."


def cmd_batch(state: AppState, args: list[str], user_id: str) -> str:
    if len(args) < 2:
        return "Usage: /batch <delete|dismiss|markSent> <reminder_id> [...]"
    result = batch_reminders(state, args[0], args[1:], user_id=user_id)
    reply = f"{result.operation}: {result.count} reminder(s) affected."
    for rid, err in result.errors.items():
        reply += f"\n  {rid}: {err}"
    return reply


def cmd_toasts(state: AppState, args: list[str], user_id: str) -> str:
    toasts = state.session.active_toasts()
    if not toasts:
        return "No active reminders on screen."
    lines = ["Active reminders:"]
    for t in toasts:
        lines.append(f"  {t.reminder_id}: {t.notification.render_text()}")
    return "\n".join(lines)


def cmd_logout(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[SESSION] Clearing notified reminders and toasts...")
    state.session.toasts.clear()
    state.notified.clear()
    return "Logged out: notification history cleared."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show poller state, reminder counts and channels.")
registry.register("task", cmd_task, help_text="Tasks: /task add <title> [@+MIN|@ISO] | due | rm.")
registry.register("tasks", cmd_tasks, help_text="List open tasks (/tasks all includes completed).")
registry.register("done", cmd_done, help_text="Complete a task: /done <task_id>.")
registry.register("remind", cmd_remind, help_text="Attach a reminder: /remind <task_id> <preset|MIN|+MIN|at:ISO> [type].")
registry.register("reminders", cmd_reminders, help_text="List reminders: /reminders [STATUS] [task_id].")
registry.register("show", cmd_show, help_text="Show one reminder with its task: /show <reminder_id>.")
registry.register("snooze", cmd_snooze, help_text="Snooze: /snooze <reminder_id> [minutes|until:ISO].")
registry.register("dismiss", cmd_dismiss, help_text="Dismiss: /dismiss <reminder_id>.")
registry.register("batch", cmd_batch, help_text="Batch: /batch <delete|dismiss|markSent> <ids...>.")
registry.register("toasts", cmd_toasts, help_text="Show reminders currently on screen.")
registry.register("logout", cmd_logout, help_text="Clear notification history and leave.")
