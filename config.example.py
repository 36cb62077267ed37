# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (Matrix password, SMTP password). Keep them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "RDESK_APP_NAME": "App display name (default: reminder-desk).",
    "RDESK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "RDESK_USER_ID": "Owner of tasks and reminders in this process (default: local).",
    # Connectors / channels
    "RDESK_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    "RDESK_OS_NOTIFICATIONS": "Bell + highlighted line for IN_APP reminders (true/false, default: true).",
    "RDESK_MATRIX_ENABLED": "Deliver PUSH reminders to a Matrix room (true/false, default: false).",
    "RDESK_EMAIL_ENABLED": "Deliver EMAIL reminders over SMTP (true/false, default: false).",
    # Paths (gitignored)
    "RDESK_DATA_DIR": "Local data directory (default: .local/reminder_desk).",
    "RDESK_REMINDERS_DB_PATH": "Reminder SQLite path (default: <data_dir>/planner.sqlite3).",
    "RDESK_TASKS_DB_PATH": "Task SQLite path (default: same file as reminders).",
    "RDESK_NOTIFIED_CACHE_PATH": "Already-notified ids (default: <data_dir>/notified_reminders.json).",
    "RDESK_MATRIX_STORE_PATH": "Matrix session directory (default: <data_dir>/matrix_store).",
    # Poller / toasts
    "RDESK_POLL_INTERVAL_SECONDS": "Seconds between poll cycles, from cycle start (default: 30).",
    "RDESK_POLL_BATCH_LIMIT": "Max due reminders handled per cycle (default: 20).",
    "RDESK_TOAST_TIMEOUT_SECONDS": "How long a toast stays on screen (default: 10).",
    "RDESK_NOTIFIED_CACHE_MAX": "Max remembered notified ids (default: 500).",
    "RDESK_COMPLETE_TASK_DISMISSES_REMINDERS": "Completing a task dismisses its reminders (default: false).",
    # Matrix (PUSH)
    "RDESK_MATRIX_HOMESERVER": "Matrix homeserver URL (MATRIX_HOMESERVER also accepted).",
    "RDESK_MATRIX_USER_ID": "Matrix user ID of the sender (MATRIX_USER_ID also accepted).",
    "RDESK_MATRIX_PASSWORD": "Password for first login; the session is stored locally afterwards.",
    "RDESK_MATRIX_PUSH_ROOM": "Room ID that receives PUSH reminders.",
    # SMTP (EMAIL)
    "RDESK_SMTP_HOST": "SMTP server (default: localhost).",
    "RDESK_SMTP_PORT": "SMTP port (default: 25).",
    "RDESK_SMTP_USERNAME": "Optional SMTP login.",
    "RDESK_SMTP_PASSWORD": "Optional SMTP password.",
    "RDESK_SMTP_USE_TLS": "Upgrade with STARTTLS (true/false, default: false).",
    "RDESK_EMAIL_FROM": "Sender address (default: reminders@localhost).",
    "RDESK_EMAIL_TO": "Comma/space separated recipient list.",
}
