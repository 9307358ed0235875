"""
Anthropic Messages API provider.

This is the document-capable provider: attached files become ``document``
(or ``image``) content blocks marked for ephemeral prompt caching.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from ..core.errors import MalformedResponseError, ProviderError
from .base import (
    ChatMessage,
    ModelProvider,
    StreamEvent,
    StreamFinished,
    TextDelta,
    TextResult,
    TokenStream,
)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096
STRUCTURED_TOOL_NAME = "respond"


def _content_to_anthropic(message: ChatMessage) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content

    blocks: list[dict[str, Any]] = []
    for part in message.content:
        if part.type == "text":
            if part.text:
                blocks.append({"type": "text", "text": part.text})
            continue
        mime_type = part.mime_type or "application/pdf"
        block_type = "image" if mime_type.startswith("image/") else "document"
        blocks.append(
            {
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": part.base64_payload(),
                },
                "cache_control": {"type": "ephemeral"},
            }
        )
    return blocks


class AnthropicProvider(ModelProvider):
    """Provider for the Anthropic Messages API."""

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "anthropic-version": ANTHROPIC_VERSION}
        if self.endpoint.api_key:
            headers["x-api-key"] = self.endpoint.api_key
        return headers

    def _payload(
        self,
        model: str,
        system: str | None,
        messages: list[ChatMessage],
        max_tokens: int | None,
    ) -> dict[str, Any]:
        # The Messages API takes system text separately from the turns
        system_parts = [system] if system else []
        turns = []
        for message in messages:
            if message.role == "system":
                system_parts.append(message.text())
            else:
                turns.append({"role": message.role, "content": _content_to_anthropic(message)})

        payload: dict[str, Any] = {
            "model": model,
            "messages": turns,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        return payload

    async def generate_structured(
        self, model: str, schema: dict[str, Any], system: str, prompt: str
    ) -> dict[str, Any]:
        payload = self._payload(model, system, [ChatMessage(role="user", content=prompt)], None)
        payload["tools"] = [
            {
                "name": STRUCTURED_TOOL_NAME,
                "description": "Return the structured response",
                "input_schema": schema,
            }
        ]
        payload["tool_choice"] = {"type": "tool", "name": STRUCTURED_TOOL_NAME}

        data = await self._post_json("/v1/messages", payload)
        for block in data.get("content") or []:
            if block.get("type") == "tool_use" and isinstance(block.get("input"), dict):
                return block["input"]
        raise MalformedResponseError("No structured tool_use block in response", provider=self.name)

    async def generate_text(
        self,
        model: str,
        *,
        system: str | None = None,
        prompt: str | None = None,
        messages: list[ChatMessage] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        thinking_budget: int | None = None,
    ) -> TextResult:
        system, conversation = self._conversation(system, prompt, messages)
        payload = self._payload(model, system, conversation, max_tokens)
        if thinking_budget:
            payload["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
            payload["max_tokens"] = max(payload["max_tokens"], thinking_budget + 1)
        elif temperature is not None:
            payload["temperature"] = temperature

        data = await self._post_json("/v1/messages", payload)
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        return TextResult(
            text=text,
            model=data.get("model", model),
            finish_reason=data.get("stop_reason"),
            usage=data.get("usage") or {},
        )

    async def stream_text(
        self,
        model: str,
        *,
        system: str | None = None,
        prompt: str | None = None,
        messages: list[ChatMessage] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> TokenStream:
        system, conversation = self._conversation(system, prompt, messages)
        payload = self._payload(model, system, conversation, max_tokens)
        payload["stream"] = True
        if temperature is not None:
            payload["temperature"] = temperature

        response = await self._open_stream("/v1/messages", payload)

        async def events() -> AsyncIterator[StreamEvent]:
            finish_reason = None
            usage: dict[str, int] = {}
            async for event, data in self._iter_sse(response):
                try:
                    body = json.loads(data)
                except json.JSONDecodeError as e:
                    raise MalformedResponseError("Invalid stream event", provider=self.name) from e

                kind = event or body.get("type")
                if kind == "content_block_delta":
                    delta = body.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield TextDelta(delta["text"])
                elif kind == "message_delta":
                    finish_reason = (body.get("delta") or {}).get("stop_reason") or finish_reason
                    usage = body.get("usage") or usage
                elif kind == "message_stop":
                    break
                elif kind == "error":
                    error = body.get("error") or {}
                    raise ProviderError(
                        error.get("message", "Stream error"), provider=self.name
                    )
            yield StreamFinished(finish_reason=finish_reason, usage=usage)

        return TokenStream(events(), on_close=response.aclose)
