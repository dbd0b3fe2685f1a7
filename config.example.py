# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Put them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "CHECKLIST_APP_NAME": "App display name (default: checklist).",
    "CHECKLIST_LOG_LEVEL": "Console logging level (default: INFO). The file log is always DEBUG.",
    # Connectors / services
    "CHECKLIST_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    "CHECKLIST_MATRIX_ENABLED": "Deliver notifications through Matrix (true/false, default: false).",
    "CHECKLIST_REMINDERS_ENABLED": "Run the scheduled reminder loop (true/false, default: false).",
    # Paths (gitignored)
    "CHECKLIST_DATA_DIR": "Local data directory (default: .local/checklist).",
    "CHECKLIST_DB_PATH": "SQLite path (default: <data_dir>/checklist.sqlite3).",
    "CHECKLIST_MATRIX_STORE_PATH": "Matrix session dir (default: <data_dir>/matrix_store).",
    # Scheduling
    "CHECKLIST_TIMEZONE": "IANA zone that defines 'today' and reminder times (default: America/Chicago).",
    "CHECKLIST_WEEKLY_MAX_ITERATIONS": "Weekly instances generated per weekday at creation (default: 104).",
    "CHECKLIST_UPCOMING_LIMIT": "Items shown by /upcoming (default: 30).",
    "CHECKLIST_HISTORY_MAX_COLUMNS": "Most recent dates shown in the history grid (default: 60).",
    "CHECKLIST_HISTORY_MONTHS_BACK": "Default history window in months (default: 6).",
    "CHECKLIST_REMINDER_SLOT_MINUTES": "Reminder slot size; 09:07 rounds down to 09:00 (default: 15).",
    "CHECKLIST_REMINDER_INTERVAL_SECONDS": "How often the reminder loop reads the clock (default: 30).",
    "CHECKLIST_NOTIFY_URL": "Link included in notifications (default: /checklist).",
    # Console operator / roles
    "CHECKLIST_OPERATOR_ID": "User id the console acts as (default: $USER).",
    "CHECKLIST_OPERATOR_ROLE": "Role of the console operator (default: dev).",
    "CHECKLIST_MANAGER_ROLES": "Roles that may create/edit/delete definitions (default: dev master_technician assistant).",
    "CHECKLIST_HISTORY_EDITOR_ROLES": "Roles that may correct history (default: dev master_technician).",
    "CHECKLIST_FORWARD_ROLES": "Roles that may forward an item to someone else (default: dev).",
    "CHECKLIST_USER_NAMES": "Display names, e.g. 'u1=Alice,u2=Bob'.",
    # Matrix
    "CHECKLIST_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "CHECKLIST_MATRIX_USER_ID": "Matrix user ID (bot).",
    "CHECKLIST_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "CHECKLIST_MATRIX_ROOMS": "Fallback room(s); the first one receives unrouted notifications.",
    "CHECKLIST_MATRIX_USER_ROOMS": "Per-recipient rooms, e.g. 'u1=!dm1:example.org,u2=!dm2:example.org'.",
}
