# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskmate.agent.dispatcher import CommandDispatcher
from taskmate.agent.task_commands import build_task_dispatcher
from taskmate.cli.bootstrap import create_initial_state
from taskmate.core.state import AppState
from taskmate.tasks.task_store import TaskStore

from .fakes import FakeClock, ScriptedProvider


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskmate-test",
        log_level="INFO",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        dialog_history_path=tmp_path / "dialog_histories.json",
        # LLM: no key -> offline provider unless a fake is injected
        llm_api_key=None,
        llm_base_url="https://api.deepseek.com",
        llm_models=["deepseek-chat"],
        llm_connect_timeout=1.0,
        llm_read_timeout=1.0,
        # Limits
        max_history_messages=31,
        max_tool_rounds=5,
        reminder_interval_seconds=3600.0,
        reminder_window_hours=24.0,
        # Features
        save_history=True,
        console_enabled=False,
        reminders_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def task_store(tmp_path: Path, clock: FakeClock) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3", clock=clock)


@pytest.fixture()
def dispatcher(task_store: TaskStore) -> CommandDispatcher:
    return build_task_dispatcher(task_store)


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture()
def state(settings: SimpleNamespace, provider: ScriptedProvider) -> AppState:
    """
    AppState wired with a scripted provider.

    NOTE: We keep the real SQLite TaskStore here because its correctness is
    part of what we want to test.
    """
    return create_initial_state(settings=settings, provider=provider)
