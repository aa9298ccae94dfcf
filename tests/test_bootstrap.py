# tests/test_bootstrap.py

from __future__ import annotations

import json
import os
import stat
import sys
from types import SimpleNamespace

from taskmate.cli.bootstrap import create_initial_state, load_dialog_histories, save_dialog_histories
from taskmate.core.messages import Role
from taskmate.core.state import AppState
from taskmate.llm.client import OpenAIChatProvider
from taskmate.llm.offline import OfflineProvider


def test_offline_provider_is_used_without_api_key(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)
    assert isinstance(state.provider, OfflineProvider)


def test_misconfigured_llm_falls_back_to_offline(settings: SimpleNamespace) -> None:
    settings.llm_api_key = "sk-test"
    settings.llm_models = []
    state = create_initial_state(settings=settings)
    assert isinstance(state.provider, OfflineProvider)


def test_api_key_selects_openai_provider(settings: SimpleNamespace) -> None:
    settings.llm_api_key = "sk-test"
    state = create_initial_state(settings=settings)
    assert isinstance(state.provider, OpenAIChatProvider)


def test_offline_end_to_end_turn(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)

    reply = state.sessions.turn("console", "console:alice", "create task: buy milk")
    assert reply.startswith("✅ Task created!")
    tasks = state.task_store.list_tasks()
    assert [(t.content, t.creator_id) for t in tasks] == [("buy milk", "console:alice")]

    reply = state.sessions.turn("console", "console:alice", f"complete task {tasks[0].id}")
    assert "completed" in reply

    reply = state.sessions.turn("console", "console:alice", "list tasks")
    assert "buy milk" in reply

    reply = state.sessions.turn("console", "console:alice", "how are you?")
    assert "Offline demo mode" in reply


def test_save_and_load_histories(state: AppState, settings: SimpleNamespace) -> None:
    state.sessions.turn("room", "alice", "hello")
    save_dialog_histories(state)

    path = settings.dialog_history_path
    assert path.exists()
    data = json.loads(path.read_text("utf-8"))
    assert data["room"]["identity"] == "alice"
    if sys.platform != "win32":
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    fresh = create_initial_state(settings=settings, provider=state.provider)
    assert load_dialog_histories(fresh) == 1
    history = fresh.sessions.history("room")
    assert [msg.role for msg in history] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
    assert history[1].content == "hello"


def test_load_ignores_missing_and_corrupt_files(state: AppState, settings: SimpleNamespace) -> None:
    assert load_dialog_histories(state) == 0

    settings.dialog_history_path.write_text("{not json", "utf-8")
    assert load_dialog_histories(state) == 0

    settings.dialog_history_path.write_text("[1, 2, 3]", "utf-8")
    assert load_dialog_histories(state) == 0


def test_history_persistence_can_be_disabled(settings: SimpleNamespace) -> None:
    settings.save_history = False
    state = create_initial_state(settings=settings)
    state.sessions.turn("room", "alice", "hello")

    save_dialog_histories(state)
    assert not settings.dialog_history_path.exists()
    assert load_dialog_histories(state) == 0
