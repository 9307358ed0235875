"""
Data stream protocol encoding for streamed chat responses.

Each part is one line ``<code>:<json>``:

* ``0`` text fragment (JSON string)
* ``2`` data frames (JSON array holding one object)
* ``3`` stream error (JSON string)
* ``d`` finish message (JSON object with ``finishReason``)
"""

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Protocol

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..core.progress import DataPart, ErrorPart, FinishPart, StreamPart, TextPart
from ..observability.logging import get_logger

logger = get_logger(__name__)

DATA_STREAM_HEADERS = {"x-vercel-ai-data-stream": "v1"}
STREAM_ERROR_MESSAGE = "An error occurred."

_PROMPT_TOKEN_KEYS = ("prompt_tokens", "input_tokens")
_COMPLETION_TOKEN_KEYS = ("completion_tokens", "output_tokens")


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _usage(usage: dict[str, Any]) -> dict[str, int]:
    def first(keys: tuple[str, ...]) -> int:
        for key in keys:
            if isinstance(usage.get(key), int):
                return usage[key]
        return 0

    return {
        "promptTokens": first(_PROMPT_TOKEN_KEYS),
        "completionTokens": first(_COMPLETION_TOKEN_KEYS),
    }


def encode_part(part: StreamPart) -> str:
    """Encode one stream part as a protocol line."""
    if isinstance(part, TextPart):
        return f"0:{_dumps(part.text)}\n"
    if isinstance(part, DataPart):
        return f"2:{_dumps([part.value])}\n"
    if isinstance(part, ErrorPart):
        return f"3:{_dumps(part.message)}\n"
    if isinstance(part, FinishPart):
        finish: dict[str, Any] = {"finishReason": part.finish_reason}
        if part.usage:
            finish["usage"] = _usage(part.usage)
        return f"d:{_dumps(finish)}\n"
    raise TypeError(f"Unknown stream part: {type(part).__name__}")


async def encode_stream(parts: AsyncIterable[StreamPart]) -> AsyncIterator[str]:
    """Encode parts as they arrive; a mid-stream failure becomes an error line."""
    try:
        async for part in parts:
            yield encode_part(part)
    except Exception as e:
        logger.exception(f"Error while streaming response: {e}")
        yield encode_part(ErrorPart(STREAM_ERROR_MESSAGE))


class ClosableParts(Protocol):
    def __aiter__(self) -> AsyncIterator[StreamPart]: ...

    async def aclose(self) -> None: ...


def data_stream_response(parts: ClosableParts, trace_id: str | None = None) -> StreamingResponse:
    """Streaming response over ``parts``; they are closed once the response ends."""
    headers = dict(DATA_STREAM_HEADERS)
    if trace_id:
        headers["x-request-id"] = trace_id
    return StreamingResponse(
        encode_stream(parts),
        media_type="text/plain; charset=utf-8",
        headers=headers,
        background=BackgroundTask(parts.aclose),
    )
