# src/reminder_desk/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "RDESK"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    user_id: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool
    email_enabled: bool
    os_notifications: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    reminders_db_path: Path
    tasks_db_path: Path
    notified_cache_path: Path
    matrix_store_path: Path

    # ---- Poller / notifier tuning ----
    poll_interval_seconds: float
    poll_batch_limit: int
    toast_timeout_seconds: float
    notified_cache_max: int
    complete_task_dismisses_reminders: bool

    # ---- Matrix (PUSH channel) ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_push_room: str

    # ---- SMTP (EMAIL channel) ----
    smtp_host: str
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    email_from: str
    email_to: List[str]

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "reminder-desk")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        user_id = _env(_k("USER_ID"), "local").strip() or "local"

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)
        email_enabled = _env_bool(_k("EMAIL_ENABLED"), False)
        os_notifications = _env_bool(_k("OS_NOTIFICATIONS"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/reminder_desk"))
        reminders_db_path = _env_path(_k("REMINDERS_DB_PATH"), data_dir / "planner.sqlite3")
        # Tasks and reminders share one database file unless told otherwise.
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), reminders_db_path)
        notified_cache_path = _env_path(_k("NOTIFIED_CACHE_PATH"), data_dir / "notified_reminders.json")
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 30.0)
        poll_batch_limit = _env_int(_k("POLL_BATCH_LIMIT"), 20)
        toast_timeout_seconds = _env_float(_k("TOAST_TIMEOUT_SECONDS"), 10.0)
        notified_cache_max = _env_int(_k("NOTIFIED_CACHE_MAX"), 500)
        complete_task_dismisses_reminders = _env_bool(_k("COMPLETE_TASK_DISMISSES_REMINDERS"), False)

        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_push_room = _env(_k("MATRIX_PUSH_ROOM"), "").strip()

        smtp_host = _env(_k("SMTP_HOST"), "localhost")
        smtp_port = _env_int(_k("SMTP_PORT"), 25)
        smtp_username = _first_env(_k("SMTP_USERNAME"), default=None)
        smtp_password = _first_env(_k("SMTP_PASSWORD"), default=None)
        smtp_use_tls = _env_bool(_k("SMTP_USE_TLS"), False)
        email_from = _env(_k("EMAIL_FROM"), "reminders@localhost")
        email_to = _env_list(_k("EMAIL_TO"), [])

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            email_enabled=email_enabled,
            os_notifications=os_notifications,
            data_dir=data_dir,
            reminders_db_path=reminders_db_path,
            tasks_db_path=tasks_db_path,
            notified_cache_path=notified_cache_path,
            matrix_store_path=matrix_store_path,
            poll_interval_seconds=poll_interval_seconds,
            poll_batch_limit=poll_batch_limit,
            toast_timeout_seconds=toast_timeout_seconds,
            notified_cache_max=notified_cache_max,
            complete_task_dismisses_reminders=complete_task_dismisses_reminders,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_push_room=matrix_push_room,
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            smtp_username=smtp_username,
            smtp_password=smtp_password,
            smtp_use_tls=smtp_use_tls,
            email_from=email_from,
            email_to=email_to,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
