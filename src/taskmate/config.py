# src/taskmate/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every key uses the TASKMATE_ prefix.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKMATE"


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


def _env_list(name: str, default: list[str]) -> list[str]:
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

    # ---- Global switches ----
    save_history: bool
    console_enabled: bool
    reminders_enabled: bool

    # ---- LLM (OpenAI-compatible, DeepSeek by default) ----
    llm_api_key: str | None
    llm_base_url: str
    llm_models: list[str]
    llm_connect_timeout: float
    llm_read_timeout: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    dialog_history_path: Path

    # ---- Conversation / tools ----
    max_history_messages: int
    max_tool_rounds: int

    # ---- Reminders ----
    reminder_interval_seconds: float
    reminder_window_hours: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "taskmate") or "taskmate"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        save_history = _env_bool(_k("SAVE_HISTORY"), True)
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        reminders_enabled = _env_bool(_k("REMINDERS_ENABLED"), True)

        # Accept the provider's own variable as a fallback.
        llm_api_key = _first_env(_k("LLM_API_KEY"), "DEEPSEEK_API_KEY", default=None)
        llm_base_url = _env(_k("LLM_BASE_URL"), "https://api.deepseek.com")
        llm_models = _env_list(_k("LLM_MODELS"), ["deepseek-chat"])
        llm_connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        llm_read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 60.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskmate"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        dialog_history_path = _env_path(_k("DIALOG_HISTORY_PATH"), data_dir / "dialog_histories.json")

        max_history_messages = _env_int(_k("MAX_HISTORY_MESSAGES"), 31)
        max_tool_rounds = _env_int(_k("MAX_TOOL_ROUNDS"), 5)

        reminder_interval_seconds = _env_float(_k("REMINDER_INTERVAL_SECONDS"), 3600.0)
        reminder_window_hours = _env_float(_k("REMINDER_WINDOW_HOURS"), 24.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            save_history=save_history,
            console_enabled=console_enabled,
            reminders_enabled=reminders_enabled,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            llm_connect_timeout=llm_connect_timeout,
            llm_read_timeout=llm_read_timeout,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            dialog_history_path=dialog_history_path,
            max_history_messages=max_history_messages,
            max_tool_rounds=max_tool_rounds,
            reminder_interval_seconds=reminder_interval_seconds,
            reminder_window_hours=reminder_window_hours,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings; .env is read on first use, never overriding real env vars."""
    load_dotenv(override=False)
    return Settings.from_env()
