# src/taskmate/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..agent.dispatcher import CommandDispatcher
from ..agent.orchestrator import ToolCallOrchestrator
from ..tasks.task_store import TaskStore
from .ports import ModelProvider
from .session import SessionStore


@dataclass
class AppState:
    """
    Runtime application state shared across connectors.

    Notes:
    - settings is intentionally typed as Any to keep tests lightweight (SimpleNamespace works)
    - everything else is wired once by the composition root (cli/bootstrap.py)
    """

    settings: Any

    task_store: TaskStore
    dispatcher: CommandDispatcher
    provider: ModelProvider
    orchestrator: ToolCallOrchestrator
    sessions: SessionStore

    save_history: bool = True
