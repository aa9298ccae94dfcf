# tests/fakes.py

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from taskmate.agent.sentinels import FULL_WIDTH, SentinelFamily
from taskmate.core.messages import ProviderReply, SessionMessage, StructuredCall
from taskmate.core.ports import ReminderNotifier, ToolCatalog
from taskmate.tasks.task_models import ReminderBatch


@dataclass(slots=True)
class ProviderCall:
    messages: list[SessionMessage]
    catalog: ToolCatalog | None


class ScriptedProvider:
    """
    Deterministic ModelProvider for unit tests.

    - Returns scripted replies in order (str -> plain text reply)
    - Raises scripted exceptions
    - Falls back to `default` once the script is exhausted
    - Captures calls for assertions
    """

    def __init__(self, *replies: ProviderReply | str | Exception, default: ProviderReply | str = "ok") -> None:
        self.replies: list[ProviderReply | str | Exception] = list(replies)
        self.default = default
        self.calls: list[ProviderCall] = []

    @staticmethod
    def _as_reply(item: ProviderReply | str) -> ProviderReply:
        return ProviderReply(text=item) if isinstance(item, str) else item

    def chat(self, messages: Sequence[SessionMessage], catalog: ToolCatalog | None = None) -> ProviderReply:
        self.calls.append(ProviderCall(messages=list(messages), catalog=catalog))
        item = self.replies.pop(0) if self.replies else self.default
        if isinstance(item, Exception):
            raise item
        return self._as_reply(item)


def structured(*calls: tuple[str, dict[str, Any] | str], text: str = "") -> ProviderReply:
    """Reply carrying structured calls; dict args are JSON-encoded, str args are sent raw."""
    out: list[StructuredCall] = []
    for n, (name, args) in enumerate(calls, start=1):
        raw = args if isinstance(args, str) else json.dumps(args)
        out.append(StructuredCall(id=f"call_{n}", name=name, arguments=raw))
    return ProviderReply(text=text, tool_calls=out)


def _marker(fam: SentinelFamily, name: str, spaced: bool) -> str:
    if spaced:
        # "< ｜name ｜>" style: spaces at two of the inner boundaries.
        return f"{fam.open[0]} {fam.open[1:]}{name} {fam.close}"
    return f"{fam.open}{name}{fam.close}"


def sentinel_batch(
    calls: Sequence[tuple[str, str]],
    *,
    family: SentinelFamily = FULL_WIDTH,
    spaced: bool = False,
    with_end: bool = True,
) -> str:
    """Build `<begin>(<call-begin>NAME<sep>ARGS<call-end>)*<end>`."""
    parts = [_marker(family, family.calls_begin, spaced)]
    for name, args in calls:
        parts.append(_marker(family, family.call_begin, spaced))
        parts.append(name)
        parts.append(_marker(family, family.sep, spaced))
        parts.append(args)
        parts.append(_marker(family, family.call_end, spaced))
    if with_end:
        parts.append(_marker(family, family.calls_end, spaced))
    return "".join(parts)


@dataclass(slots=True)
class RecordingNotifier(ReminderNotifier):
    """
    Fake ReminderNotifier used by reminder tests.
    """

    batches: list[ReminderBatch] = field(default_factory=list)

    async def send_reminder(self, batch: ReminderBatch) -> None:
        self.batches.append(batch)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
