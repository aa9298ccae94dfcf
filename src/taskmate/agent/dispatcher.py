# src/taskmate/agent/dispatcher.py

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CommandArgs = dict[str, Any]
CommandHandler = Callable[[CommandArgs], str]


class ParamKind(StrEnum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ID_LIST = "id_list"


# ---- coercion (one function per kind) ----


def _coerce_string(value: Any) -> str:
    if isinstance(value, bool):
        raise ValidationError(f"expected a string, got {value!r}")
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    raise ValidationError(f"expected a string, got {type(value).__name__}")


def _coerce_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValidationError(f"expected a number, got {value!r}") from None
    raise ValidationError(f"expected a number, got {type(value).__name__}")


def _coerce_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise ValidationError(f"expected an integer, got {value!r}") from None
    raise ValidationError(f"expected an integer, got {value!r}")


_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
    raise ValidationError(f"expected a boolean, got {value!r}")


def _coerce_id_element(value: Any) -> int | None:
    try:
        n = _coerce_integer(value)
    except ValidationError:
        return None
    return n if n > 0 else None


def _coerce_id_list(value: Any) -> tuple[list[int], list[str]]:
    """
    Element-wise coercion; returns (ids, warnings).

    Accepts a list, a single id, a JSON array string or a comma separated string.
    Elements that cannot be coerced are dropped.
    """
    if value is None:
        return [], []

    items: Sequence[Any]
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = text.strip("[]").split(",")
            items = decoded if isinstance(decoded, list) else [decoded]
        else:
            items = [p for p in text.replace(",", " ").split() if p]
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        items = [value]

    ids: list[int] = []
    warnings: list[str] = []
    for item in items:
        n = _coerce_id_element(item)
        if n is None:
            warnings.append(f"dropped invalid task id {item!r}")
            continue
        ids.append(n)
    return ids, warnings


_JSON_TYPES: dict[ParamKind, dict[str, Any]] = {
    ParamKind.STRING: {"type": "string"},
    ParamKind.NUMBER: {"type": "number"},
    ParamKind.INTEGER: {"type": "integer"},
    ParamKind.BOOLEAN: {"type": "boolean"},
    ParamKind.ID_LIST: {"type": "array", "items": {"type": "integer"}},
}

_SCALAR_COERCERS: dict[ParamKind, Callable[[Any], Any]] = {
    ParamKind.STRING: _coerce_string,
    ParamKind.NUMBER: _coerce_number,
    ParamKind.INTEGER: _coerce_integer,
    ParamKind.BOOLEAN: _coerce_boolean,
}


@dataclass(slots=True, frozen=True)
class Param:
    name: str
    kind: ParamKind
    description: str
    required: bool = False
    aliases: tuple[str, ...] = ()

    def schema(self) -> dict[str, Any]:
        return {**_JSON_TYPES[self.kind], "description": self.description}


@dataclass(slots=True, frozen=True)
class Command:
    name: str
    description: str
    params: tuple[Param, ...]
    handler: CommandHandler

    # Parameter filled from the conversation identity when absent or empty.
    identity_param: str | None = None


@dataclass(slots=True)
class CommandResult:
    command: str
    content: str
    warnings: list[str] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class CommandDispatcher:
    """
    Registry of named operations offered to the model as tools.

    execute() normalizes aliases, injects the conversation identity where a
    command asks for it, coerces every declared parameter by its kind and
    calls the handler. Domain errors from the handler propagate.
    """

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register(self, command: Command) -> None:
        key = command.name.strip()
        if key in self._commands:
            logger.warning("Command %s re-registered; replacing", key)
        self._commands[key] = command

    def names(self) -> list[str]:
        return list(self._commands)

    def get(self, name: str) -> Command | None:
        return self._commands.get((name or "").strip())

    def catalog(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for cmd in self._commands.values():
            out.append(
                {
                    "name": cmd.name,
                    "description": cmd.description,
                    "parameters": {
                        "type": "object",
                        "properties": {p.name: p.schema() for p in cmd.params},
                        "required": [p.name for p in cmd.params if p.required],
                    },
                }
            )
        return out

    # ---- execution ----

    def _normalize(
        self,
        cmd: Command,
        args: Mapping[str, Any],
        identity: str | None,
    ) -> tuple[CommandArgs, list[str]]:
        raw: dict[str, Any] = dict(args)

        for p in cmd.params:
            for alias in p.aliases:
                if alias not in raw:
                    continue
                value = raw.pop(alias)
                if _is_empty(raw.get(p.name)):
                    raw[p.name] = value

        if cmd.identity_param and identity and _is_empty(raw.get(cmd.identity_param)):
            raw[cmd.identity_param] = identity

        known = {p.name for p in cmd.params}
        extra = sorted(k for k in raw if k not in known)
        if extra:
            logger.debug("Command %s: ignoring unknown args %s", cmd.name, extra)

        coerced: CommandArgs = {}
        warnings: list[str] = []
        for p in cmd.params:
            value = raw.get(p.name)

            if p.kind == ParamKind.ID_LIST:
                if value is None:
                    if p.required:
                        raise ValidationError(f"missing required parameter: {p.name}")
                    continue
                ids, dropped = _coerce_id_list(value)
                coerced[p.name] = ids
                warnings.extend(f"{p.name}: {w}" for w in dropped)
                continue

            if _is_empty(value):
                if p.required:
                    raise ValidationError(f"missing required parameter: {p.name}")
                continue

            try:
                coerced[p.name] = _SCALAR_COERCERS[p.kind](value)
            except ValidationError as e:
                raise ValidationError(f"invalid parameter {p.name}: {e}") from None

        return coerced, warnings

    def execute(
        self,
        name: str,
        args: Mapping[str, Any] | None,
        *,
        identity: str | None = None,
    ) -> CommandResult:
        cmd = self.get(name)
        if cmd is None:
            raise NotFoundError(f"unknown command: {name}")

        if args is None:
            args = {}
        if not isinstance(args, Mapping):
            raise ValidationError(f"arguments for {cmd.name} must be an object")

        coerced, warnings = self._normalize(cmd, args, identity)
        for w in warnings:
            logger.warning("Command %s: %s", cmd.name, w)

        logger.info("Executing command %s args=%s", cmd.name, sorted(coerced))
        content = cmd.handler(coerced)
        return CommandResult(command=cmd.name, content=content, warnings=warnings)
