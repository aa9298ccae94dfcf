# src/taskmate/core/ports.py

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps connectors/storage/model providers swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from typing import Any, Protocol

from ..tasks.task_models import ReminderBatch, Task
from .messages import ProviderReply, SessionMessage

ToolCatalog = list[dict[str, Any]]
# [{"name": ..., "description": ..., "parameters": <JSON schema object>}, ...]


class ModelProvider(Protocol):
    """
    Chat completion with optional tool calling.

    Raises TransportError when the call fails or returns nothing usable.
    """

    def chat(
            self,
            messages: Sequence[SessionMessage],
            catalog: ToolCatalog | None = None,
    ) -> ProviderReply: ...


class ReminderNotifier(Protocol):
    """
    Connector-side port: how the reminder loop sends text outward.

    The connector decides where a batch goes (console, chat room, log).
    """

    def send_reminder(self, batch: ReminderBatch) -> Awaitable[None]: ...


class TaskReader(Protocol):
    """Read path used by the reminder loop."""

    def overdue_tasks(self, now_ts: float | None = None) -> list[Task]: ...
    def upcoming_tasks(self, window_seconds: float, now_ts: float | None = None) -> list[Task]: ...
