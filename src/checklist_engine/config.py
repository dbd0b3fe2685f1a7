# src/checklist_engine/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every scheduling constant that depends on deployment assumptions is overridable here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "CHECKLIST"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


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


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_map(name: str) -> dict[str, str]:
    """Parse "key=value,key2=value2" into a dict; malformed pairs are skipped."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return {}
    out: dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            out[key] = value
    return out


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool
    reminders_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    matrix_store_path: Path

    # ---- Scheduling ----
    timezone: str
    weekly_max_iterations: int
    upcoming_limit: int
    history_max_columns: int
    history_months_back: int
    reminder_slot_minutes: int
    reminder_interval_seconds: float
    notify_url: str

    # ---- Console operator / roles ----
    operator_id: str
    operator_role: str
    manager_roles: frozenset[str]
    history_editor_roles: frozenset[str]
    forward_roles: frozenset[str]
    user_names: dict[str, str]

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: list[str]
    matrix_user_rooms: dict[str, str]

    def display_name(self, user_id: str | None) -> str:
        if not user_id:
            return "Someone"
        return self.user_names.get(user_id, user_id)

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "checklist") or "checklist"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)
        reminders_enabled = _env_bool(_k("REMINDERS_ENABLED"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/checklist"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "checklist.sqlite3")
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        timezone = _env(_k("TIMEZONE"), "America/Chicago") or "America/Chicago"
        weekly_max_iterations = max(1, _env_int(_k("WEEKLY_MAX_ITERATIONS"), 104))
        upcoming_limit = max(1, _env_int(_k("UPCOMING_LIMIT"), 30))
        history_max_columns = max(1, _env_int(_k("HISTORY_MAX_COLUMNS"), 60))
        history_months_back = max(1, _env_int(_k("HISTORY_MONTHS_BACK"), 6))
        reminder_slot_minutes = max(1, _env_int(_k("REMINDER_SLOT_MINUTES"), 15))
        reminder_interval_seconds = max(1.0, _env_float(_k("REMINDER_INTERVAL_SECONDS"), 30.0))
        notify_url = _env(_k("NOTIFY_URL"), "/checklist") or "/checklist"

        operator_id = (_env(_k("OPERATOR_ID"), "") or os.getenv("USER") or "local").strip()
        operator_role = _env(_k("OPERATOR_ROLE"), "dev").strip()
        manager_roles = frozenset(
            _env_list(_k("MANAGER_ROLES"), ["dev", "master_technician", "assistant"])
        )
        history_editor_roles = frozenset(
            _env_list(_k("HISTORY_EDITOR_ROLES"), ["dev", "master_technician"])
        )
        forward_roles = frozenset(_env_list(_k("FORWARD_ROLES"), ["dev"]))
        user_names = _env_map(_k("USER_NAMES"))

        matrix_homeserver = _env(_k("MATRIX_HOMESERVER"), "").strip()
        matrix_user_id = _env(_k("MATRIX_USER_ID"), "").strip()
        matrix_password = _env(_k("MATRIX_PASSWORD"), "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), [])
        matrix_user_rooms = _env_map(_k("MATRIX_USER_ROOMS"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            reminders_enabled=reminders_enabled,
            data_dir=data_dir,
            db_path=db_path,
            matrix_store_path=matrix_store_path,
            timezone=timezone,
            weekly_max_iterations=weekly_max_iterations,
            upcoming_limit=upcoming_limit,
            history_max_columns=history_max_columns,
            history_months_back=history_months_back,
            reminder_slot_minutes=reminder_slot_minutes,
            reminder_interval_seconds=reminder_interval_seconds,
            notify_url=notify_url,
            operator_id=operator_id,
            operator_role=operator_role,
            manager_roles=manager_roles,
            history_editor_roles=history_editor_roles,
            forward_roles=forward_roles,
            user_names=user_names,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            matrix_user_rooms=matrix_user_rooms,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
