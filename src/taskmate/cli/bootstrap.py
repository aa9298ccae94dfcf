# src/taskmate/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/dispatcher/provider/sessions),
- persists per-conversation histories as JSON (optional).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from ..agent.orchestrator import ToolCallOrchestrator
from ..agent.task_commands import build_task_dispatcher
from ..config import get_settings
from ..core.ports import ModelProvider
from ..core.session import SessionStore
from ..core.state import AppState
from ..llm.client import OpenAIChatProvider
from ..llm.offline import OfflineProvider
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.dialog_history_path.parent.mkdir(parents=True, exist_ok=True)


def _make_provider(settings) -> ModelProvider:
    api_key = (getattr(settings, "llm_api_key", None) or "").strip()
    if not api_key:
        logger.warning("No LLM API key configured; using the offline demo provider.")
        return OfflineProvider()

    try:
        return OpenAIChatProvider(
            api_key=api_key,
            base_url=settings.llm_base_url,
            models=settings.llm_models,
            connect_timeout=settings.llm_connect_timeout,
            read_timeout=settings.llm_read_timeout,
        )
    except ValueError:
        # Fallback for demos / local runs with an incomplete LLM config.
        logger.exception("LLM provider misconfigured; using the offline demo provider.")
        return OfflineProvider()


def create_initial_state(*, settings=None, provider: ModelProvider | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    dispatcher = build_task_dispatcher(task_store)
    if provider is None:
        provider = _make_provider(settings)

    orchestrator = ToolCallOrchestrator(
        provider,
        dispatcher,
        max_rounds=settings.max_tool_rounds,
    )
    sessions = SessionStore(orchestrator, max_messages=settings.max_history_messages)

    return AppState(
        settings=settings,
        task_store=task_store,
        dispatcher=dispatcher,
        provider=provider,
        orchestrator=orchestrator,
        sessions=sessions,
        save_history=settings.save_history,
    )


def load_dialog_histories(state: AppState) -> int:
    """Restore session histories from JSON; returns the number of conversations loaded."""
    if not state.save_history:
        return 0
    raw_path = getattr(state.settings, "dialog_history_path", None)
    if not raw_path:
        return 0
    path = Path(raw_path)
    if not path.exists():
        return 0
    try:
        data = json.loads(path.read_text("utf-8"))
        if not isinstance(data, dict):
            return 0
        n = state.sessions.restore(data)
        logger.info("Loaded dialog histories: %d dialogs from %s", n, path)
        return n
    except Exception:
        logger.exception("Failed to load dialog histories from %s", path)
        return 0


def save_dialog_histories(state: AppState) -> None:
    if not state.save_history:
        return
    raw_path = getattr(state.settings, "dialog_history_path", None)
    if not raw_path:
        return
    path = Path(raw_path)
    try:
        snapshot = state.sessions.snapshot()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, path)
        with contextlib.suppress(OSError):
            # History may contain sensitive content; keep the file private on disk.
            os.chmod(path, 0o600)
        logger.info("Saved dialog histories: %d dialogs to %s", len(snapshot), path)
    except Exception:
        logger.exception("Failed to save dialog histories to %s", path)
