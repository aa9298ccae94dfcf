# src/taskmate/core/session.py

"""
Per-conversation chat sessions.

This module is transport-agnostic:
- connectors call turn(conversation_id, user_identity, text) and send the reply,
- the session keeps the history, pins the system message and runs the orchestrator.

Key invariants:
- the first message of every conversation is the pinned system message,
- turns of one conversation never overlap (per-conversation lock),
- only the user message and the final assistant reply are kept in history;
  intermediate tool traffic lives for one turn only,
- eviction drops the oldest non-pinned messages first.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import TransportError
from . import messages as m
from .messages import Role, SessionMessage
from .persona import build_system_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 31

RESET_COMMANDS = frozenset(
    {
        "reset topic",
        "new topic",
        "clear",
        "clear conversation",
        "换个话题",
        "换个话题吧",
        "清空",
        "清空对话",
    }
)
SESSION_QUERY = "get:session"

RESET_REPLY = "OK, let's start over. What would you like to talk about?"
APOLOGY_REPLY = "Sorry, I can't reach the language model right now. Please try again in a moment."

SystemPromptFactory = Callable[[str], str]


class TurnRunner(Protocol):
    def run(self, history: list[SessionMessage], *, identity: str | None) -> Any: ...


def _normalize_control(text: str) -> str:
    return " ".join((text or "").split()).casefold()


@dataclass(slots=True)
class _Conversation:
    identity: str
    messages: list[SessionMessage]
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionStore:
    def __init__(
            self,
            orchestrator: TurnRunner,
            *,
            max_messages: int = DEFAULT_MAX_MESSAGES,
            system_prompt_factory: SystemPromptFactory = build_system_prompt,
    ) -> None:
        self._orchestrator = orchestrator
        # Room for the pinned message plus at least one exchange.
        self._max_messages = max(3, int(max_messages))
        self._system_prompt_factory = system_prompt_factory
        self._conversations: dict[str, _Conversation] = {}
        self._guard = threading.Lock()

    # ---- internals ----

    def _pinned(self, identity: str) -> SessionMessage:
        return m.system(self._system_prompt_factory(identity))

    def _get_or_create(self, conversation_id: str, identity: str) -> _Conversation:
        with self._guard:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                conv = _Conversation(identity=identity, messages=[self._pinned(identity)])
                self._conversations[conversation_id] = conv
                logger.info("Session created conversation=%s identity=%s", conversation_id, identity)
            return conv

    def _evict(self, conv: _Conversation) -> None:
        overflow = len(conv.messages) - self._max_messages
        if overflow > 0:
            del conv.messages[1 : 1 + overflow]
            logger.debug("Session evicted %d message(s)", overflow)

    @staticmethod
    def _transcript(conv: _Conversation) -> str:
        lines = [f"{msg.role.value}: {msg.content}" for msg in conv.messages if msg.role != Role.SYSTEM]
        if not lines:
            return "(empty conversation)"
        return "\n".join(lines)

    # ---- public API ----

    def turn(self, conversation_id: str, user_identity: str, text: str) -> str:
        conv = self._get_or_create(conversation_id, user_identity)

        with conv.lock:
            control = _normalize_control(text)
            if control in RESET_COMMANDS:
                del conv.messages[1:]
                logger.info("Session reset conversation=%s", conversation_id)
                return RESET_REPLY
            if control == SESSION_QUERY:
                return self._transcript(conv)

            # Refresh the pinned prompt (identity, current time).
            conv.identity = user_identity
            conv.messages[0] = self._pinned(user_identity)

            conv.messages.append(m.user(text))
            self._evict(conv)

            try:
                result = self._orchestrator.run(list(conv.messages), identity=user_identity)
                reply = result.text
            except TransportError as e:
                logger.warning("Provider unavailable conversation=%s: %s", conversation_id, e)
                reply = APOLOGY_REPLY

            conv.messages.append(m.assistant(reply))
            self._evict(conv)
            return reply

    def history(self, conversation_id: str) -> list[SessionMessage]:
        with self._guard:
            conv = self._conversations.get(conversation_id)
        if conv is None:
            return []
        with conv.lock:
            return list(conv.messages)

    def reset(self, conversation_id: str) -> None:
        with self._guard:
            conv = self._conversations.get(conversation_id)
        if conv is None:
            return
        with conv.lock:
            del conv.messages[1:]

    def conversation_ids(self) -> list[str]:
        with self._guard:
            return list(self._conversations)

    # ---- persistence ----

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable copy of all histories (pinned message excluded)."""
        out: dict[str, Any] = {}
        with self._guard:
            items = list(self._conversations.items())
        for cid, conv in items:
            with conv.lock:
                out[cid] = {
                    "identity": conv.identity,
                    "messages": [msg.to_dict() for msg in conv.messages[1:]],
                }
        return out

    def restore(self, data: dict[str, Any]) -> int:
        """Load histories produced by snapshot(); returns the number restored."""
        restored = 0
        for cid, raw in (data or {}).items():
            if not isinstance(cid, str):
                continue
            if isinstance(raw, list):
                identity, raw_msgs = cid, raw
            elif isinstance(raw, dict):
                identity = str(raw.get("identity") or cid)
                raw_msgs = raw.get("messages") or []
            else:
                continue

            msgs = [
                SessionMessage.from_dict(item)
                for item in raw_msgs
                if isinstance(item, dict)
            ]
            msgs = [msg for msg in msgs if msg.role in (Role.USER, Role.ASSISTANT)]

            conv = _Conversation(identity=identity, messages=[self._pinned(identity), *msgs])
            self._evict(conv)
            with self._guard:
                self._conversations[cid] = conv
            restored += 1

        logger.info("Sessions restored: %d", restored)
        return restored
