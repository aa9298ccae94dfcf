# src/taskmate/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.messages import ProviderReply, Role, SessionMessage, StructuredCall
from ..core.ports import ToolCatalog
from ..errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODELS = ("deepseek-chat",)

# How long a model that answered 404 stays skipped.
BAD_MODEL_TTL_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    # APITimeoutError is a subclass of APIConnectionError.
    return isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def to_openai_messages(messages: Sequence[SessionMessage]) -> list[dict[str, Any]]:
    """Serialize session messages into the chat-completions wire shape."""
    out: list[dict[str, Any]] = []
    for msg in messages:
        item: dict[str, Any] = {"role": msg.role.value, "content": msg.content}

        if msg.role == Role.ASSISTANT and msg.tool_calls:
            item["content"] = msg.content or None
            item["tool_calls"] = [
                {
                    "id": c.id,
                    "type": "function",
                    "function": {"name": c.name, "arguments": c.arguments or "{}"},
                }
                for c in msg.tool_calls
            ]

        if msg.role == Role.TOOL:
            item["tool_call_id"] = msg.tool_call_id or ""

        out.append(item)
    return out


def to_openai_tools(catalog: ToolCatalog) -> list[dict[str, Any]]:
    return [{"type": "function", "function": dict(entry)} for entry in catalog]


def _reply_from_completion(completion: Any) -> ProviderReply:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return ProviderReply()

    message = choices[0].message
    calls: list[StructuredCall] = []
    for tc in getattr(message, "tool_calls", None) or []:
        fn = getattr(tc, "function", None)
        if fn is None or not getattr(fn, "name", None):
            continue
        calls.append(
            StructuredCall(
                id=str(getattr(tc, "id", "") or ""),
                name=str(fn.name),
                arguments=str(getattr(fn, "arguments", "") or "{}"),
            )
        )
    return ProviderReply(text=str(getattr(message, "content", "") or ""), tool_calls=calls)


class OpenAIChatProvider:
    """
    OpenAI-compatible chat completions with tool calling (DeepSeek by default).

    Behavior:
    - Tries models in the configured order.
    - 404 (model not available) -> skip the model for a while, try next.
    - Rate limit / network issues / empty reply -> try next.
    - Auth issues -> fail fast (no retries across models).
    - Every failure surfaces as TransportError.
    """

    def __init__(
            self,
            *,
            api_key: str,
            base_url: str = DEFAULT_BASE_URL,
            models: Sequence[str] = DEFAULT_MODELS,
            connect_timeout: float = 5.0,
            read_timeout: float = 60.0,
            temperature: float | None = None,
            client: OpenAI | None = None,
    ) -> None:
        self._models = [m.strip() for m in models if m and m.strip()]
        if not self._models:
            raise ValueError("LLM model list is empty. Set TASKMATE_LLM_MODELS in your .env.")

        self._temperature = temperature
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=10.0,
            pool=connect_timeout,
        )
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        if client is None:
            if not (api_key or "").strip():
                raise ValueError("LLM API key is not set. Set TASKMATE_LLM_API_KEY in your .env.")
            # Automatic retries off: fallback across models is quicker.
            client = OpenAI(
                base_url=base_url,
                api_key=api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        self._client = client

    @property
    def models(self) -> list[str]:
        return list(self._models)

    def _create(self, model: str, payload: list[dict[str, Any]], tools: list[dict[str, Any]] | None) -> Any:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": payload,
            "timeout": self._timeout,
        }
        if tools:
            kwargs["tools"] = tools
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        return self._client.chat.completions.create(**kwargs)

    def chat(
            self,
            messages: Sequence[SessionMessage],
            catalog: ToolCatalog | None = None,
    ) -> ProviderReply:
        payload = to_openai_messages(messages)
        tools = to_openai_tools(catalog) if catalog else None

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s messages=%d tools=%d", model, len(payload), len(tools or []))
            t0 = time.monotonic()

            try:
                completion = self._create(model, payload, tools)
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise TransportError(
                        "LLM authentication failed. Check your API key (TASKMATE_LLM_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + BAD_MODEL_TTL_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            reply = _reply_from_completion(completion)
            if reply.text.strip() or reply.tool_calls:
                logger.info(
                    "LLM: reply from model=%s (%.2fs) text_len=%d tool_calls=%d",
                    model,
                    time.monotonic() - t0,
                    len(reply.text),
                    len(reply.tool_calls),
                )
                return reply

            last_error = TransportError(f"Model returned no content: {model}")
            logger.info("LLM: empty reply from model=%s, trying next", model)

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise TransportError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise TransportError("LLM network/timeout error. Try again later or change models.") from last_error
            raise TransportError("All LLM models failed.") from last_error

        raise TransportError("All LLM models are temporarily unavailable.")
