# client.py
# Model client boundary.
#
# The executor talks to anything that satisfies ModelClient. OpenRouterClient
# is the production implementation: an OpenAI SDK client pointed at an
# OpenAI-compatible endpoint. Retries and rate limits belong to the SDK, not
# to the executor. A query made under a run deadline gets a single attempt.

import json
import re
import uuid
from collections.abc import Sequence
from typing import Any, Protocol

import openai
from openai import OpenAI

from skill_agent.config import LLMConfig
from skill_agent.context import RunCancelledError, RunContext
from skill_agent.models import ConversationTurn, FinalText, ModelResponse, ToolCalls, ToolRequest


class ModelClient(Protocol):
    def complete(
        self,
        conversation: Sequence[ConversationTurn],
        tool_schemas: Sequence[dict[str, Any]],
        *,
        model: str,
        temperature: float,
        context: RunContext | None = None,
    ) -> ModelResponse:
        ...


_FENCED_JSON = re.compile(r"^```(?:json)?\s*(\{.*\})\s*```$", re.DOTALL)


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_inline_tool_call(text: str) -> ToolRequest | None:
    """
    Recognise the text protocol `{"tool": "name", "args": {...}}`.

    Some models ignore native function calling and answer with the JSON object
    the system prompt describes. The whole reply (optionally fenced) must be
    that object; anything else is treated as a plain-text answer.
    """
    raw = text.strip()
    fenced = _FENCED_JSON.match(raw)
    if fenced:
        raw = fenced.group(1)
    if not (raw.startswith("{") and raw.endswith("}")):
        return None
    try:
        data = json.loads(raw, strict=False)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("tool"), str) or not data["tool"]:
        return None

    args = data.get("args", {})
    return ToolRequest(
        id=_new_call_id(),
        name=data["tool"],
        arguments=json.dumps(args if isinstance(args, dict) else {}),
    )


class OpenRouterClient:
    """
    OpenAI-compatible chat completions client.

    Example:
        client = OpenRouterClient(api_key="sk-or-...")
        response = client.complete(turns, schemas, model="openai/gpt-4o-mini", temperature=0.2)
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 60.0,
        max_retries: int = 3,
    ) -> None:
        self._timeout = timeout
        self._client = OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OpenRouterClient":
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=float(config.timeout_seconds),
            max_retries=config.max_retries,
        )

    def complete(
        self,
        conversation: Sequence[ConversationTurn],
        tool_schemas: Sequence[dict[str, Any]],
        *,
        model: str,
        temperature: float,
        context: RunContext | None = None,
    ) -> ModelResponse:
        if context is not None:
            context.check()

        request: dict[str, Any] = {
            "model": model,
            "messages": [turn.to_message() for turn in conversation],
            "temperature": temperature,
        }
        if tool_schemas:
            request["tools"] = list(tool_schemas)

        client = self._client
        remaining = context.remaining() if context is not None else None
        deadline_bound = remaining is not None and remaining <= self._timeout
        if remaining is not None:
            # One attempt bounded by the deadline; SDK retries would restart the clock.
            client = self._client.with_options(max_retries=0, timeout=min(remaining, self._timeout))

        try:
            response = client.chat.completions.create(**request)
        except openai.APITimeoutError as exc:
            if deadline_bound or (context is not None and context.cancelled):
                raise RunCancelledError("Model query exceeded the run deadline.") from exc
            raise

        # A cancel() issued while the request was in flight wins over its answer.
        if context is not None:
            context.check()
        return self.parse_response(response)

    @staticmethod
    def parse_response(response: Any) -> ModelResponse:
        """Turn a chat completion into FinalText or ToolCalls."""
        message = response.choices[0].message
        content = (message.content or "").strip()

        calls = message.tool_calls or []
        if calls:
            requests = tuple(
                ToolRequest(
                    id=call.id or _new_call_id(),
                    name=call.function.name,
                    arguments=call.function.arguments or "",
                )
                for call in calls
            )
            return ToolCalls(text=content, requests=requests)

        inline = parse_inline_tool_call(content)
        if inline is not None:
            return ToolCalls(text="", requests=(inline,))
        return FinalText(text=content)
