"""
Provider-neutral message types, stream events and the ModelProvider interface.

Providers talk to vendor HTTP APIs through a shared ``httpx.AsyncClient`` and
translate these neutral types to and from each vendor's wire format.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..config.settings import ModelEndpoint
from ..core.errors import MalformedResponseError, ProviderError
from ..observability.logging import get_logger

logger = get_logger(__name__)


class ContentPart(BaseModel):
    """One part of a multi-part message: plain text or an attached file."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["text", "file"]
    text: str | None = None
    data: str | None = Field(None, description="Base64 payload or data URL")
    mime_type: str | None = Field(None, alias="mimeType")
    name: str | None = None

    def base64_payload(self) -> str:
        """File payload with any ``data:<mime>;base64,`` prefix removed."""
        data = self.data or ""
        if data.startswith("data:") and "," in data:
            return data.split(",", 1)[1]
        return data

    def data_url(self) -> str:
        data = self.data or ""
        if data.startswith("data:"):
            return data
        return f"data:{self.mime_type or 'application/octet-stream'};base64,{data}"


class ChatMessage(BaseModel):
    """A conversation message with string or multi-part content."""

    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart]

    def text(self) -> str:
        """Plain text of the message regardless of its content shape."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if part.type == "text" and part.text)

    @property
    def has_file(self) -> bool:
        return isinstance(self.content, list) and any(p.type == "file" for p in self.content)


@dataclass
class TextResult:
    """Complete text returned by a blocking generation call."""

    text: str
    model: str
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class TextDelta:
    """An incremental fragment of streamed model output."""

    text: str


@dataclass
class StreamFinished:
    """Terminal stream item, delivered once after the provider stream is drained."""

    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


StreamEvent = TextDelta | StreamFinished


class TokenStream:
    """
    Async iterator of TextDelta items ending with exactly one StreamFinished.

    Iteration owns the underlying HTTP response: it is released when the
    stream is drained, when the consumer stops early, or on ``aclose()``.
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self._events = events
        self._on_close = on_close
        self._closed = False

    @classmethod
    def from_chunks(cls, chunks: Iterable[str], finish_reason: str = "stop") -> "TokenStream":
        """Build a stream from already available text chunks."""

        async def events() -> AsyncIterator[StreamEvent]:
            for chunk in chunks:
                yield TextDelta(chunk)
            yield StreamFinished(finish_reason=finish_reason)

        return cls(events())

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        try:
            async for event in self._events:
                if isinstance(event, StreamFinished):
                    yield event
                    return
                yield event
            yield StreamFinished()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            await self._on_close()


class ModelProvider(ABC):
    """HTTP-backed model provider."""

    def __init__(self, endpoint: ModelEndpoint, http_client: httpx.AsyncClient):
        self.endpoint = endpoint
        self.http_client = http_client

    @property
    def name(self) -> str:
        return self.endpoint.name

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Authentication and version headers for every request."""
        ...

    @abstractmethod
    async def generate_structured(
        self, model: str, schema: dict[str, Any], system: str, prompt: str
    ) -> dict[str, Any]:
        """Generate a JSON object conforming to ``schema``."""
        ...

    @abstractmethod
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
        """Generate a complete response."""
        ...

    @abstractmethod
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
        """
        Open a streaming generation.

        The request is sent and its status checked before returning, so
        provider errors surface here rather than mid-iteration.
        """
        ...

    async def embed(self, model: str, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError(f"{self.name} does not provide embeddings")

    @staticmethod
    def _conversation(
        system: str | None, prompt: str | None, messages: list[ChatMessage] | None
    ) -> tuple[str | None, list[ChatMessage]]:
        """Normalise the (system, prompt | messages) call shapes."""
        conversation = list(messages or [])
        if prompt is not None:
            conversation.append(ChatMessage(role="user", content=prompt))
        if not conversation:
            raise ValueError("Either prompt or messages is required")
        return system, conversation

    # -- HTTP plumbing -------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.endpoint.base_url}{path}"

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.http_client.post(
                self._url(path),
                json=payload,
                headers=self._headers(),
                timeout=self.endpoint.timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {path} failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            raise self._status_error(response, response.text)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Invalid JSON from {path}", response.status_code, self.name
            ) from e

    async def _open_stream(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        request = self.http_client.build_request(
            "POST",
            self._url(path),
            json=payload,
            headers=self._headers(),
            timeout=self.endpoint.timeout,
        )
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise ProviderError(f"Stream to {path} failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise self._status_error(response, body)
        return response

    def _status_error(self, response: httpx.Response, body: str) -> ProviderError:
        message = body[:500]
        try:
            error = json.loads(body).get("error")
            if isinstance(error, dict) and error.get("message"):
                message = error["message"]
            elif isinstance(error, str):
                message = error
        except (json.JSONDecodeError, AttributeError):
            pass
        logger.warning(
            f"{self.name} returned HTTP {response.status_code}",
            provider=self.name,
            status_code=response.status_code,
        )
        return ProviderError(message, response.status_code, self.name)

    @staticmethod
    async def _iter_sse(response: httpx.Response) -> AsyncIterator[tuple[str | None, str]]:
        """Yield ``(event, data)`` pairs from a server-sent events body."""
        event: str | None = None
        data_lines: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if data_lines:
                    yield event, "\n".join(data_lines)
                event, data_lines = None, []
                continue
            if line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if name == "event":
                event = value
            elif name == "data":
                data_lines.append(value)
        if data_lines:
            yield event, "\n".join(data_lines)

    async def aclose(self) -> None:
        """Providers share the container's client; nothing to release by default."""
        return None
