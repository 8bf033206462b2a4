"""Client wrapper for an OpenAI-compatible chat completions API (OpenRouter)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

import httpx

from sms_assistant.core.config import CompletionSettings
from sms_assistant.core.errors import TransientUpstreamError
from sms_assistant.utils.http import NO_RETRY, send_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function call requested by the model; ``arguments`` is raw JSON text."""

    id: str
    name: str
    arguments: str


@dataclass(slots=True)
class CompletionResult:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None


class CompletionClient:
    """Issue chat completion requests with an attached tool schema."""

    def __init__(
        self,
        settings: CompletionSettings,
        *,
        referer: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._referer = referer
        self._timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/chat/completions"

    async def complete(
        self,
        messages: Sequence[Dict[str, Any]],
        *,
        tools: Sequence[Dict[str, Any]] | None = None,
        max_tokens: int = 500,
        tool_choice: str = "auto",
    ) -> CompletionResult:
        payload: Dict[str, Any] = {
            "model": self._settings.model_name,
            "messages": list(messages),
            "max_tokens": max_tokens,
            "temperature": self._settings.temperature,
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = tool_choice

        headers = {
            "Authorization": f"Bearer {self._settings.api_key}",
            "X-Title": self._settings.app_title,
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await send_with_retry(
                client.post,
                self.endpoint,
                operation="chat completion",
                retry_config=NO_RETRY,
                json=payload,
                headers=headers,
            )

        result = _parse_completion(response.json())
        logger.info(
            "Completion received (%d tool call(s), finish_reason=%s)",
            len(result.tool_calls),
            result.finish_reason,
        )
        return result


def _parse_completion(payload: Dict[str, Any]) -> CompletionResult:
    choices = payload.get("choices") or []
    if not choices:
        raise TransientUpstreamError(
            "chat completion", body=f"Response carried no choices: {str(payload)[:200]}"
        )
    choice = choices[0]
    message = choice.get("message") or {}
    tool_calls = []
    for index, raw_call in enumerate(message.get("tool_calls") or []):
        function = raw_call.get("function") or {}
        arguments = function.get("arguments") or "{}"
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        tool_calls.append(
            ToolCall(
                id=raw_call.get("id") or f"call_{index}",
                name=function.get("name", ""),
                arguments=arguments,
            )
        )
    return CompletionResult(
        content=(message.get("content") or "").strip(),
        tool_calls=tool_calls,
        finish_reason=choice.get("finish_reason"),
    )


__all__ = ["CompletionClient", "CompletionResult", "ToolCall"]
