# src/taskmate/llm/offline.py

from __future__ import annotations

import json
import re
from collections.abc import Sequence

from ..core.messages import ProviderReply, Role, SessionMessage, StructuredCall
from ..core.ports import ToolCatalog

_RE_CREATE = re.compile(r"^(?:create task|add task|创建任务|添加任务)[:：\s]+(?P<content>.+)$", re.I | re.S)
_RE_DONE = re.compile(r"^(?:complete task|done|完成任务)\s*#?(?P<id>\d+)\s*$", re.I)
_LIST_WORDS = {"list tasks", "tasks", "任务列表", "查看任务"}


class OfflineProvider:
    """
    Offline deterministic provider used for demos when no API key is configured.

    Behavior:
    - "create task: <text>" / "创建任务 <text>" -> create_task call
    - "complete task 3" / "完成任务 3" -> update_task_status call
    - "list tasks" / "任务列表" -> list_tasks call
    - after tool results -> echoes the last tool result
    - anything else -> a friendly offline notice
    """

    def __init__(self) -> None:
        self._seq = 0

    def _call(self, name: str, args: dict[str, object]) -> ProviderReply:
        self._seq += 1
        return ProviderReply(
            text="",
            tool_calls=[
                StructuredCall(
                    id=f"offline_{self._seq}",
                    name=name,
                    arguments=json.dumps(args, ensure_ascii=False),
                )
            ],
        )

    def chat(
            self,
            messages: Sequence[SessionMessage],
            catalog: ToolCatalog | None = None,
    ) -> ProviderReply:
        last = messages[-1] if messages else None

        # Closing the loop after tool execution.
        if last is not None and last.role == Role.TOOL:
            return ProviderReply(text=last.content)

        user_text = ""
        for msg in reversed(messages):
            if msg.role == Role.USER:
                user_text = msg.content.strip()
                break

        tool_names = {entry.get("name") for entry in catalog or []}

        m = _RE_CREATE.match(user_text)
        if m and "create_task" in tool_names:
            return self._call("create_task", {"content": m.group("content").strip()})

        m = _RE_DONE.match(user_text)
        if m and "update_task_status" in tool_names:
            return self._call("update_task_status", {"task_id": int(m.group("id")), "status": "completed"})

        if user_text.lower() in _LIST_WORDS and "list_tasks" in tool_names:
            return self._call("list_tasks", {})

        return ProviderReply(
            text=(
                "Offline demo mode: no external LLM is configured.\n"
                "Set TASKMATE_LLM_API_KEY (and TASKMATE_LLM_MODELS) to enable real responses.\n"
                "Try: 'create task: <text>', 'list tasks', 'complete task <id>'.\n\n"
                f"You said: {user_text}"
            )
        )
