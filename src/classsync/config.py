# src/classsync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Push delivery is optional: without CLASSSYNC_PUSH_URL the offline dispatcher is used.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "CLASSSYNC"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Notifications ----
    message_budget: int

    # ---- Push delivery ----
    push_url: Optional[str]
    push_api_key: Optional[str]
    push_function: str
    push_connect_timeout: float
    push_read_timeout: float

    # ---- Console / session ----
    console_enabled: bool
    actor_id: str
    actor_name: str
    actor_role: str

    @property
    def push_enabled(self) -> bool:
        return bool(self.push_url and self.push_url.strip())

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "classsync").strip() or "classsync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/classsync"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "classsync.sqlite3")

        # A budget below 1 would strip every message down to "...".
        message_budget = max(1, _env_int(_k("MESSAGE_BUDGET"), 10))

        push_url = _env(_k("PUSH_URL"), "").strip().rstrip("/") or None
        push_api_key = _env(_k("PUSH_API_KEY"), "").strip() or None
        push_function = _env(_k("PUSH_FUNCTION"), "send-push-notification").strip() or "send-push-notification"
        push_connect_timeout = _env_float(_k("PUSH_CONNECT_TIMEOUT_SECONDS"), 5.0)
        push_read_timeout = _env_float(_k("PUSH_READ_TIMEOUT_SECONDS"), 15.0)

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        actor_id = _env(_k("ACTOR_ID"), "local-cr").strip() or "local-cr"
        actor_name = _env(_k("ACTOR_NAME"), "Class Representative").strip() or "Class Representative"
        actor_role = _env(_k("ACTOR_ROLE"), "cr").strip().lower() or "cr"

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            message_budget=message_budget,
            push_url=push_url,
            push_api_key=push_api_key,
            push_function=push_function,
            push_connect_timeout=push_connect_timeout,
            push_read_timeout=push_read_timeout,
            console_enabled=console_enabled,
            actor_id=actor_id,
            actor_name=actor_name,
            actor_role=actor_role,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
