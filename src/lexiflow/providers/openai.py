"""
OpenAI-compatible chat completions provider.

Works against any server exposing ``/chat/completions`` and ``/embeddings``
with the OpenAI request and streaming formats.
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


def _content_to_openai(message: ChatMessage) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content

    parts: list[dict[str, Any]] = []
    for part in message.content:
        if part.type == "text":
            parts.append({"type": "text", "text": part.text or ""})
        elif (part.mime_type or "").startswith("image/"):
            parts.append({"type": "image_url", "image_url": {"url": part.data_url()}})
        else:
            parts.append(
                {
                    "type": "file",
                    "file": {"filename": part.name or "attachment", "file_data": part.data_url()},
                }
            )
    return parts


class OpenAIProvider(ModelProvider):
    """Provider for the OpenAI chat completions API."""

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.endpoint.api_key:
            headers["Authorization"] = f"Bearer {self.endpoint.api_key}"
        return headers

    def _messages(
        self, system: str | None, messages: list[ChatMessage]
    ) -> list[dict[str, Any]]:
        payload = []
        if system:
            payload.append({"role": "system", "content": system})
        for message in messages:
            payload.append({"role": message.role, "content": _content_to_openai(message)})
        return payload

    @staticmethod
    def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
        choices = data.get("choices") or []
        if not choices:
            raise MalformedResponseError("Response contained no choices", provider="openai")
        return choices[0]

    async def generate_structured(
        self, model: str, schema: dict[str, Any], system: str, prompt: str
    ) -> dict[str, Any]:
        payload = {
            "model": model,
            "messages": self._messages(system, [ChatMessage(role="user", content=prompt)]),
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": schema, "strict": True},
            },
        }
        data = await self._post_json("/chat/completions", payload)
        content = self._first_choice(data).get("message", {}).get("content") or ""
        try:
            result = json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                "Structured output was not valid JSON", provider=self.name
            ) from e
        if not isinstance(result, dict):
            raise MalformedResponseError("Structured output was not an object", provider=self.name)
        return result

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
        # thinking_budget has no chat completions equivalent
        system, conversation = self._conversation(system, prompt, messages)
        payload: dict[str, Any] = {"model": model, "messages": self._messages(system, conversation)}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        data = await self._post_json("/chat/completions", payload)
        choice = self._first_choice(data)
        return TextResult(
            text=choice.get("message", {}).get("content") or "",
            model=data.get("model", model),
            finish_reason=choice.get("finish_reason"),
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
        payload: dict[str, Any] = {
            "model": model,
            "messages": self._messages(system, conversation),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        response = await self._open_stream("/chat/completions", payload)

        async def events() -> AsyncIterator[StreamEvent]:
            finish_reason = None
            usage: dict[str, int] = {}
            async for _, data in self._iter_sse(response):
                if data.strip() == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError as e:
                    raise MalformedResponseError(
                        "Invalid stream chunk", provider=self.name
                    ) from e
                if "error" in chunk:
                    raise ProviderError(str(chunk["error"]), provider=self.name)
                usage = chunk.get("usage") or usage
                for choice in chunk.get("choices") or []:
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield TextDelta(text)
                    finish_reason = choice.get("finish_reason") or finish_reason
            yield StreamFinished(finish_reason=finish_reason, usage=usage)

        return TokenStream(events(), on_close=response.aclose)

    async def embed(self, model: str, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        data = await self._post_json("/embeddings", {"model": model, "input": texts})
        rows = sorted(data.get("data") or [], key=lambda row: row.get("index", 0))
        if len(rows) != len(texts):
            raise MalformedResponseError(
                f"Expected {len(texts)} embeddings, got {len(rows)}", provider=self.name
            )
        return [row["embedding"] for row in rows]
