# src/taskmate/core/messages.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class CallOrigin(StrEnum):
    STRUCTURED = "structured"
    TEXT = "text"


@dataclass(slots=True, frozen=True)
class StructuredCall:
    """A tool call as the provider returned it (arguments are a raw JSON string)."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(slots=True)
class ProviderReply:
    text: str = ""
    tool_calls: list[StructuredCall] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ToolCall:
    """An interpreted tool invocation, ready for the dispatcher."""

    name: str
    arguments: dict[str, Any]
    origin: CallOrigin
    id: str | None = None


@dataclass(slots=True)
class SessionMessage:
    role: Role
    content: str = ""

    # role == tool: id of the call this message answers.
    tool_call_id: str | None = None

    # role == assistant: structured calls requested in this message.
    tool_calls: list[StructuredCall] = field(default_factory=list)

    # ---- persistence ----

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            out["tool_calls"] = [
                {"id": c.id, "name": c.name, "arguments": c.arguments} for c in self.tool_calls
            ]
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMessage:
        try:
            role = Role(str(data.get("role", "user")))
        except ValueError:
            role = Role.USER

        calls: list[StructuredCall] = []
        for raw in data.get("tool_calls") or []:
            if not isinstance(raw, dict):
                continue
            calls.append(
                StructuredCall(
                    id=str(raw.get("id", "")),
                    name=str(raw.get("name", "")),
                    arguments=str(raw.get("arguments", "{}")),
                )
            )

        tool_call_id = data.get("tool_call_id")
        return cls(
            role=role,
            content=str(data.get("content", "")),
            tool_call_id=str(tool_call_id) if tool_call_id else None,
            tool_calls=calls,
        )


def system(content: str) -> SessionMessage:
    return SessionMessage(Role.SYSTEM, content)


def user(content: str) -> SessionMessage:
    return SessionMessage(Role.USER, content)


def assistant(content: str, tool_calls: list[StructuredCall] | None = None) -> SessionMessage:
    return SessionMessage(Role.ASSISTANT, content, tool_calls=list(tool_calls or []))


def tool(content: str, tool_call_id: str | None) -> SessionMessage:
    return SessionMessage(Role.TOOL, content, tool_call_id=tool_call_id)
