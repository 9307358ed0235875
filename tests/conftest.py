"""
Global pytest configuration and fixtures for test isolation.

Provides a scripted in-process model provider, a retry policy that never
sleeps, and resets every module-level singleton between tests.
"""

import os
import random
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

os.environ.setdefault("LEX_OBSERVABILITY__ENABLE_TRACING", "false")

from lexiflow.config.settings import ModelEndpoint, RetryConfig, WorkflowConfig  # noqa: E402
from lexiflow.core.orchestrator import WorkflowOrchestrator  # noqa: E402
from lexiflow.core.planner import StepPlanner  # noqa: E402
from lexiflow.core.retry import RetryPolicy  # noqa: E402
from lexiflow.core.step_executor import StepExecutor, TextOnly, WithAttachment  # noqa: E402
from lexiflow.providers.base import (  # noqa: E402
    ModelProvider,
    StreamEvent,
    StreamFinished,
    TextDelta,
    TextResult,
    TokenStream,
)
from lexiflow.providers.factory import ModelRoute  # noqa: E402


def reset_all_global_state():
    """Reset all module-level state and reseed random generators."""
    random.seed(1337)
    np.random.seed(1337)

    from lexiflow.api import server
    from lexiflow.config.container import get_container
    from lexiflow.config.settings import get_settings
    from lexiflow.core import determinism
    from lexiflow.observability import metrics, probe, tracing
    from lexiflow.observability.logging import clear_trace_id

    server._reset_globals_for_tests()
    determinism._reset_config_hash_for_tests()
    metrics._metrics_collector = None
    tracing._tracing_manager = None
    probe._METRICS_STORE.clear()
    clear_trace_id()
    get_settings.cache_clear()
    get_container.cache_clear()


@pytest.fixture(autouse=True)
def test_isolation():
    """Per-test isolation to ensure clean state for each test."""
    reset_all_global_state()
    yield


class ScriptedProvider(ModelProvider):
    """
    In-process provider returning scripted results.

    Every call is recorded in ``calls`` and appended to ``timeline`` so tests
    can assert ordering against the stream parts they consume.
    """

    def __init__(
        self,
        name: str = "scripted",
        structured: Any = None,
        texts: list[Any] | None = None,
        stream_chunks: Any = None,
        fail_stream_after: int | None = None,
        timeline: list[str] | None = None,
    ):
        super().__init__(
            ModelEndpoint(name=name, base_url="http://scripted.local"), http_client=MagicMock()
        )
        self.structured = structured if structured is not None else {"steps": []}
        self.texts = list(texts or [])
        self.stream_chunks = stream_chunks if stream_chunks is not None else ["Hello", " world"]
        self.fail_stream_after = fail_stream_after
        self.timeline = timeline if timeline is not None else []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.streams_opened = 0
        self.streams_closed = 0

    def _headers(self) -> dict[str, str]:
        return {}

    def calls_of(self, kind: str) -> list[dict[str, Any]]:
        return [kwargs for call_kind, kwargs in self.calls if call_kind == kind]

    async def generate_structured(self, model, schema, system, prompt):
        self.calls.append(
            ("structured", {"model": model, "schema": schema, "system": system, "prompt": prompt})
        )
        self.timeline.append("call:plan")
        if isinstance(self.structured, BaseException):
            raise self.structured
        return self.structured

    async def generate_text(self, model, **kwargs):
        self.calls.append(("text", {"model": model, **kwargs}))
        self.timeline.append("call:text")
        result = self.texts.pop(0) if self.texts else f"result {len(self.calls_of('text'))}"
        if isinstance(result, BaseException):
            raise result
        return TextResult(text=result, model=model)

    async def stream_text(self, model, **kwargs):
        self.calls.append(("stream", {"model": model, **kwargs}))
        self.timeline.append("call:stream")
        if isinstance(self.stream_chunks, BaseException):
            raise self.stream_chunks

        chunks = list(self.stream_chunks)
        fail_after = self.fail_stream_after
        self.streams_opened += 1

        async def events() -> AsyncIterator[StreamEvent]:
            for i, chunk in enumerate(chunks):
                if fail_after is not None and i == fail_after:
                    raise RuntimeError("stream broke")
                yield TextDelta(chunk)
            yield StreamFinished(finish_reason="stop")

        async def on_close():
            self.streams_closed += 1

        return TokenStream(events(), on_close=on_close)

    async def embed(self, model, texts):
        self.calls.append(("embed", {"model": model, "texts": texts}))
        return [[float(len(text)), 1.0] for text in texts]


class StatusError(Exception):
    """Exception carrying an HTTP-like status code."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


async def collect(parts) -> list:
    return [part async for part in parts]


@pytest.fixture
def timeline() -> list[str]:
    return []


@pytest.fixture
def sleep_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry_policy(sleep_mock) -> RetryPolicy:
    """Retry policy with default config that never actually sleeps."""
    return RetryPolicy(RetryConfig(), sleep=sleep_mock, rand=lambda: 0.5)


@pytest.fixture
def make_provider(timeline):
    def _make(**kwargs) -> ScriptedProvider:
        kwargs.setdefault("timeline", timeline)
        return ScriptedProvider(**kwargs)

    return _make


@pytest.fixture
def make_orchestrator(retry_policy):
    def _make(provider: ModelProvider, config: WorkflowConfig | None = None):
        config = config or WorkflowConfig()
        planner = StepPlanner(ModelRoute(provider, "planner-model"), retry_policy)
        executor = StepExecutor(retry_policy, config)
        return WorkflowOrchestrator(planner, executor, config)

    return _make


@pytest.fixture
def text_route():
    def _make(provider: ModelProvider) -> TextOnly:
        return TextOnly(ModelRoute(provider, "text-model"))

    return _make


@pytest.fixture
def attachment_route():
    def _make(provider: ModelProvider) -> WithAttachment:
        return WithAttachment(ModelRoute(provider, "document-model"))

    return _make
