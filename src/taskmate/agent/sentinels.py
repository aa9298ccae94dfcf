# src/taskmate/agent/sentinels.py

"""
Text-embedded tool calls.

Some providers (DeepSeek in particular) occasionally put tool calls into the
reply text instead of the structured tool_calls field:

    Sure.<｜tool▁calls▁begin｜><｜tool▁call▁begin｜>create_task<｜tool▁sep｜>{"content": "x"}<｜tool▁call▁end｜><｜tool▁calls▁end｜>

Two sentinel families are seen in the wild (full-width and ASCII pipes), and
the model sometimes inserts a space just inside a bracket ("< |tool_sep| >").
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from itertools import product
from typing import Any

from ..core.messages import CallOrigin, ToolCall
from ..errors import ParseError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SentinelFamily:
    name: str
    open: str
    close: str
    calls_begin: str
    calls_end: str
    call_begin: str
    call_end: str
    sep: str

    @property
    def marker_names(self) -> tuple[str, ...]:
        return (self.calls_begin, self.calls_end, self.call_begin, self.call_end, self.sep)


FULL_WIDTH = SentinelFamily(
    name="full_width",
    open="<｜",
    close="｜>",
    calls_begin="tool▁calls▁begin",
    calls_end="tool▁calls▁end",
    call_begin="tool▁call▁begin",
    call_end="tool▁call▁end",
    sep="tool▁sep",
)

ASCII = SentinelFamily(
    name="ascii",
    open="<|",
    close="|>",
    calls_begin="tool_calls_begin",
    calls_end="tool_calls_end",
    call_begin="tool_call_begin",
    call_end="tool_call_end",
    sep="tool_sep",
)

FAMILIES: tuple[SentinelFamily, ...] = (FULL_WIDTH, ASCII)

Span = tuple[int, int]


@dataclass(slots=True)
class TextExtraction:
    calls: list[ToolCall] = field(default_factory=list)
    # Reply text with every sentinel batch removed.
    cleaned: str = ""
    # True when the text contained any sentinel at all.
    found: bool = False
    # Calls that were located but could not be parsed.
    skipped: int = 0


@lru_cache(maxsize=64)
def marker_variants(open_: str, name: str, close: str) -> tuple[str, ...]:
    """
    Exact spelling first, then the 15 spellings with one space inserted at
    any combination of the four inner boundaries.
    """
    o1, o2 = open_[:1], open_[1:]
    c1, c2 = close[:-1], close[-1:]
    out: list[str] = []
    for a, b, c, d in product(("", " "), repeat=4):
        out.append(f"{o1}{a}{o2}{b}{name}{c}{c1}{d}{c2}")
    return tuple(out)


def find_marker(text: str, open_: str, name: str, close: str, start: int = 0) -> Span | None:
    """
    Locate the earliest sentinel in any spelling; returns (begin, end) or None.
    The exact spelling wins a tie at the same index.
    """
    best: Span | None = None
    for v in marker_variants(open_, name, close):
        idx = text.find(v, start)
        if idx != -1 and (best is None or idx < best[0]):
            best = (idx, idx + len(v))
    return best


def _find(text: str, fam: SentinelFamily, name: str, start: int = 0) -> Span | None:
    return find_marker(text, fam.open, name, fam.close, start)


def contains_tool_sentinels(text: str) -> bool:
    if not text:
        return False
    return any(_find(text, fam, n) is not None for fam in FAMILIES for n in fam.marker_names)


def _strip_stray_markers(text: str) -> str:
    for fam in FAMILIES:
        for n in fam.marker_names:
            for v in marker_variants(fam.open, n, fam.close):
                text = text.replace(v, "")
    return text


_WS_RUN = re.compile(r"\s+")


def parse_arguments(payload: str) -> dict[str, Any]:
    """
    Decode a JSON argument blob.

    One repair pass (collapse newlines, tabs and runs of spaces) is tried
    before giving up with ParseError.
    """
    text = payload.strip()
    if not text:
        return {}

    try:
        value = json.loads(text)
    except json.JSONDecodeError as first:
        repaired = _WS_RUN.sub(" ", text)
        try:
            value = json.loads(repaired)
        except json.JSONDecodeError:
            raise ParseError(f"malformed tool arguments: {first.msg}") from None
        logger.debug("Tool arguments parsed after whitespace repair")

    if not isinstance(value, dict):
        raise ParseError(f"tool arguments must be a JSON object, got {type(value).__name__}")
    return value


def _strip_code_fence(payload: str) -> str:
    p = payload.strip()
    if not p.startswith("```"):
        return p
    p = p.split("\n", 1)[1] if "\n" in p else ""
    p = p.rstrip()
    if p.endswith("```"):
        p = p[:-3]
    return p.strip()


def _split_call(segment: str, fam: SentinelFamily) -> tuple[str, str]:
    sep = _find(segment, fam, fam.sep)
    if sep is None:
        raise ParseError("separator sentinel not found")

    name = segment[: sep[0]].strip()
    payload = segment[sep[1] :].strip()

    # DeepSeek native shape: "function<sep>name\n```json\n{...}\n```".
    if name.lower() == "function" and payload and not payload.startswith("{"):
        first, _, rest = payload.partition("\n")
        name, payload = first.strip(), rest

    payload = _strip_code_fence(payload)
    if not name:
        raise ParseError("tool name is empty")
    return name, payload


def _scan_batch(block: str, fam: SentinelFamily, out: TextExtraction) -> None:
    pos = 0
    while True:
        cb = _find(block, fam, fam.call_begin, pos)
        if cb is None:
            return

        ce = _find(block, fam, fam.call_end, cb[1])
        nxt = _find(block, fam, fam.call_begin, cb[1])
        if nxt is not None and (ce is None or nxt[0] < ce[0]):
            # Unterminated call: it ends where the next one starts.
            seg_end = next_pos = nxt[0]
        elif ce is not None:
            seg_end, next_pos = ce[0], ce[1]
        else:
            seg_end = next_pos = len(block)

        segment = block[cb[1] : seg_end]
        try:
            name, payload = _split_call(segment, fam)
            args = parse_arguments(payload)
        except ParseError as e:
            out.skipped += 1
            logger.warning("Skipping text tool call: %s (segment=%r)", e, segment[:200])
        else:
            out.calls.append(ToolCall(name=name, arguments=args, origin=CallOrigin.TEXT))
            logger.debug("Parsed text tool call name=%s", name)

        pos = next_pos


def extract_tool_calls(text: str) -> TextExtraction:
    """
    Pull every sentinel-delimited batch out of `text`.

    A batch without its end sentinel runs to the end of the text. Only the
    call that fails to parse is skipped; scanning continues after it.
    """
    out = TextExtraction(found=contains_tool_sentinels(text))
    if not out.found:
        out.cleaned = (text or "").strip()
        return out

    remaining = text
    kept: list[str] = []
    while True:
        hit: tuple[SentinelFamily, Span] | None = None
        for fam in FAMILIES:
            span = _find(remaining, fam, fam.calls_begin)
            if span is not None and (hit is None or span[0] < hit[1][0]):
                hit = (fam, span)
        if hit is None:
            kept.append(remaining)
            break

        fam, begin = hit
        end = _find(remaining, fam, fam.calls_end, begin[1])
        if end is None:
            block, batch_end = remaining[begin[1] :], len(remaining)
        else:
            block, batch_end = remaining[begin[1] : end[0]], end[1]

        kept.append(remaining[: begin[0]])
        _scan_batch(block, fam, out)
        remaining = remaining[batch_end:]

    out.cleaned = _strip_stray_markers("".join(kept)).strip()
    logger.debug(
        "Text tool extraction: calls=%d skipped=%d cleaned_len=%d",
        len(out.calls),
        out.skipped,
        len(out.cleaned),
    )
    return out
