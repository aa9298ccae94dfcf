# src/taskmate/agent/orchestrator.py

"""
Tool-call orchestration for one user turn.

Loop (bounded by max_rounds):
- ask the provider (tool catalog offered on the first round only)
- structured calls -> execute each, append assistant + tool messages, next round
- text-embedded calls (sentinels) -> same, with synthetic call ids
- otherwise the reply text is the final answer

Per-call failures become "Error: ..." tool results and never abort the round.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from ..core import messages as m
from ..core.messages import CallOrigin, ProviderReply, SessionMessage, StructuredCall, ToolCall
from ..core.ports import ModelProvider
from ..errors import ParseError, TaskmateError, TransportError
from .dispatcher import CommandDispatcher
from .sentinels import extract_tool_calls, parse_arguments

logger = logging.getLogger(__name__)

GENERIC_DONE_NOTICE = "Your request has been processed."
DEFAULT_MAX_ROUNDS = 5


@dataclass(slots=True)
class OrchestratorResult:
    text: str
    rounds: int
    tool_results: list[str] = field(default_factory=list)
    # Full working conversation, ending with the final assistant message.
    messages: list[SessionMessage] = field(default_factory=list)


class ToolCallOrchestrator:
    def __init__(
            self,
            provider: ModelProvider,
            dispatcher: CommandDispatcher,
            *,
            max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self._max_rounds = max(1, int(max_rounds))

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    # ---- per-call execution ----

    def _invoke(self, call: ToolCall, identity: str | None) -> str:
        try:
            result = self._dispatcher.execute(call.name, call.arguments, identity=identity)
        except TaskmateError as e:
            logger.info("Tool %s (%s) rejected: %s", call.name, call.origin, e)
            return f"Error: {e}"
        except Exception as e:
            logger.exception("Tool %s (%s) crashed", call.name, call.origin)
            return f"Error: {call.name} failed: {e}"

        content = result.content
        if result.warnings:
            content += "\n(Warnings: " + "; ".join(result.warnings) + ")"
        return content

    def _invoke_structured(self, wire: StructuredCall, identity: str | None) -> str:
        try:
            args = parse_arguments(wire.arguments or "")
        except ParseError as e:
            logger.warning("Structured call %s has bad arguments: %s", wire.name, e)
            return f"Error: invalid arguments for {wire.name}: {e}"
        call = ToolCall(name=wire.name, arguments=args, origin=CallOrigin.STRUCTURED, id=wire.id)
        return self._invoke(call, identity)

    @staticmethod
    def _to_wire(call: ToolCall) -> StructuredCall:
        return StructuredCall(
            id=call.id or "",
            name=call.name,
            arguments=json.dumps(call.arguments, ensure_ascii=False),
        )

    # ---- helpers ----

    @staticmethod
    def _fallback(tool_results: list[str]) -> str:
        for r in tool_results:
            if r.strip():
                return r
        return GENERIC_DONE_NOTICE

    def _finish(
            self,
            text: str,
            rounds: int,
            tool_results: list[str],
            conversation: list[SessionMessage],
    ) -> OrchestratorResult:
        conversation.append(m.assistant(text))
        logger.info("Turn finished rounds=%s tools=%s", rounds, len(tool_results))
        return OrchestratorResult(
            text=text,
            rounds=rounds,
            tool_results=tool_results,
            messages=conversation,
        )

    # ---- public API ----

    def run(self, history: Sequence[SessionMessage], *, identity: str | None) -> OrchestratorResult:
        """
        Drive one user turn to a final answer.

        Raises TransportError only when the first provider call fails and no
        tool has produced output yet.
        """
        conversation: list[SessionMessage] = list(history)
        tool_results: list[str] = []
        catalog = self._dispatcher.catalog()

        for rnd in range(1, self._max_rounds + 1):
            offer = catalog if rnd == 1 else None

            try:
                reply: ProviderReply = self._provider.chat(conversation, offer)
            except TransportError:
                if not tool_results:
                    raise
                logger.exception("Follow-up round %s failed; using tool results", rnd)
                return self._finish(self._fallback(tool_results), rnd, tool_results, conversation)

            text = reply.text or ""

            if not text.strip() and not reply.tool_calls:
                if not tool_results:
                    raise TransportError("provider returned an empty reply")
                logger.warning("Empty follow-up reply round=%s; using tool results", rnd)
                return self._finish(self._fallback(tool_results), rnd, tool_results, conversation)

            # Structured calls take precedence over anything in the text.
            if reply.tool_calls:
                calls = [
                    StructuredCall(id=c.id or f"call_{rnd}_{n}", name=c.name, arguments=c.arguments)
                    for n, c in enumerate(reply.tool_calls, start=1)
                ]
                cleaned = extract_tool_calls(text).cleaned
                conversation.append(m.assistant(cleaned, calls))
                for call in calls:
                    content = self._invoke_structured(call, identity)
                    conversation.append(m.tool(content, call.id))
                    tool_results.append(content)
                logger.info("Round %s: executed %s structured call(s)", rnd, len(calls))
                continue

            extraction = extract_tool_calls(text)
            if extraction.calls:
                calls = [
                    replace(c, id=f"embedded_{rnd}_{n}")
                    for n, c in enumerate(extraction.calls, start=1)
                ]
                conversation.append(m.assistant(extraction.cleaned, [self._to_wire(c) for c in calls]))
                for call in calls:
                    content = self._invoke(call, identity)
                    conversation.append(m.tool(content, call.id))
                    tool_results.append(content)
                logger.info(
                    "Round %s: executed %s text-embedded call(s), skipped %s",
                    rnd,
                    len(calls),
                    extraction.skipped,
                )
                continue

            if extraction.found:
                logger.warning("Round %s: sentinels present but no parseable call", rnd)
                final = extraction.cleaned or text.strip()
            else:
                final = text.strip()
            return self._finish(final, rnd, tool_results, conversation)

        logger.warning("Round cap reached (%s); returning last tool result", self._max_rounds)
        final = tool_results[-1] if tool_results else GENERIC_DONE_NOTICE
        return self._finish(final, self._max_rounds, tool_results, conversation)
