"""
Chat service: mode dispatch, default mode streaming, attachment handling and
pseudonymization.
"""

from collections.abc import AsyncIterable, AsyncIterator
from enum import Enum
from typing import Any

from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.probe import probe
from ..providers.base import ChatMessage, ContentPart, TextDelta, TokenStream
from ..providers.factory import ProviderFactory
from ..rag.context import ContextAugmenter
from .errors import LexiflowError
from .orchestrator import WorkflowOrchestrator
from .progress import FinishPart, ProgressChannel, StreamPart, TextPart
from .prompts import CHAT_SYSTEM_PROMPT, PSEUDONYMIZATION_SYSTEM_PROMPT
from .retry import RetryPolicy
from .step_executor import resolve_route

logger = get_logger(__name__)


class ChatMode(str, Enum):
    """Supported chat modes."""

    DEFAULT = "default"
    WORKFLOW = "workflow"


class InvalidModeError(LexiflowError):
    """The requested chat mode is not supported."""


def parse_mode(value: str | None) -> ChatMode:
    try:
        return ChatMode(value or ChatMode.DEFAULT.value)
    except ValueError as e:
        raise InvalidModeError(f"Invalid mode specified: {value}") from e


def extract_text_from_message(message: ChatMessage | None) -> str:
    """Plain text of a message; text parts are joined with newlines."""
    if message is None:
        return ""
    return message.text()


def prepare_file_message(
    messages: list[ChatMessage], data: dict[str, Any] | None
) -> list[ChatMessage]:
    """
    Replace the last message with a user message carrying the attached file.

    With no file data the messages are returned unchanged. The input list is
    not mutated.
    """
    logger.info("File detected, preparing file message")
    prepared = list(messages)
    last_message = prepared.pop() if prepared else None

    if not data:
        logger.info("No file data provided, keeping the last message")
        if last_message is not None:
            prepared.append(last_message)
        return prepared

    file = data.get("file") or {}
    prepared.append(
        ChatMessage(
            role="user",
            content=[
                ContentPart(type="text", text=extract_text_from_message(last_message)),
                ContentPart(
                    type="file",
                    data=file.get("content") or "",
                    mime_type=file.get("type") or "",
                    name=file.get("name"),
                ),
            ],
        )
    )
    return prepared


class TokenStreamParts:
    """
    Text parts followed by a finish part, forwarded from an open token stream.

    ``aclose()`` releases the stream even if the parts are never iterated.
    """

    def __init__(self, stream: TokenStream):
        self.stream = stream

    async def __aiter__(self) -> AsyncIterator[StreamPart]:
        try:
            async for event in self.stream:
                if isinstance(event, TextDelta):
                    yield TextPart(event.text)
                else:
                    yield FinishPart(event.finish_reason or "stop", event.usage)
        finally:
            await self.stream.aclose()

    async def aclose(self) -> None:
        await self.stream.aclose()


class ChatService:
    """Entry point for chat requests in either mode."""

    def __init__(
        self,
        providers: ProviderFactory,
        orchestrator: WorkflowOrchestrator,
        retry_policy: RetryPolicy,
        augmenter: ContextAugmenter | None = None,
        enable_progress: bool = True,
    ):
        self.providers = providers
        self.orchestrator = orchestrator
        self.retry_policy = retry_policy
        self.augmenter = augmenter
        self.enable_progress = enable_progress

    async def start(
        self,
        mode: ChatMode,
        messages: list[ChatMessage],
        has_file: bool = False,
        data: dict[str, Any] | None = None,
        resource_id: str | None = None,
        trace_id: str | None = None,
    ) -> AsyncIterable[StreamPart]:
        """
        Begin a chat response and return its stream parts.

        Default mode opens the model stream before returning, so provider
        failures raise here. Workflow mode never raises; failures become an
        error frame in the returned stream. The parts support ``aclose()``.
        """
        get_metrics_collector().record_request(mode.value)
        processed = prepare_file_message(messages, data) if has_file else list(messages)

        if mode == ChatMode.DEFAULT:
            stream = await self.open_default(processed, has_file, trace_id)
            return TokenStreamParts(stream)
        return self.run_workflow(
            processed,
            has_file,
            resource_id,
            ProgressChannel(enabled=self.enable_progress),
            trace_id,
        )

    async def open_default(
        self, messages: list[ChatMessage], has_file: bool, trace_id: str | None = None
    ) -> TokenStream:
        logger.info("Starting default mode processing", has_file=has_file)
        if has_file:
            route = self.providers.document_route()

            def call():
                return route.provider.stream_text(route.model, messages=messages)

            label = "File processing with document model"
        else:
            route = self.providers.text_route()

            def call():
                return route.provider.stream_text(
                    route.model, system=CHAT_SYSTEM_PROMPT, messages=messages
                )

            label = "Default mode processing"

        with probe("chat.default_open", trace_id, model=route.model):
            return await self.retry_policy.execute(call, label)

    async def run_workflow(
        self,
        messages: list[ChatMessage],
        has_file: bool,
        resource_id: str | None,
        progress: ProgressChannel,
        trace_id: str | None = None,
    ) -> AsyncIterator[StreamPart]:
        logger.info("Starting workflow mode processing", has_file=has_file)
        if has_file and resource_id and self.augmenter is not None:
            messages = await self.augmenter.augment(messages, resource_id)

        user_input = extract_text_from_message(messages[-1] if messages else None)
        route = resolve_route(has_file, self.providers)
        async for part in self.orchestrator.run(user_input, messages, route, progress, trace_id):
            yield part

    def run_plain_workflow(
        self, workflow_input: str, trace_id: str | None = None
    ) -> AsyncIterator[StreamPart]:
        """Workflow over a single text input without progress frames."""
        get_metrics_collector().record_request("plain_workflow")
        messages = [ChatMessage(role="user", content=workflow_input)]
        return self.run_workflow(
            messages, False, None, ProgressChannel(enabled=False), trace_id
        )

    async def pseudonymize(self, message: str, trace_id: str | None = None) -> str:
        """Replace personal data in ``message`` with category placeholders."""
        route = self.providers.document_route()
        logger.info("Starting text pseudonymization", chars=len(message))

        with probe("chat.pseudonymize", trace_id, model=route.model):
            result = await self.retry_policy.execute(
                lambda: route.provider.generate_text(
                    route.model, system=PSEUDONYMIZATION_SYSTEM_PROMPT, prompt=message
                ),
                "Text pseudonymization",
            )

        logger.info(
            "Text pseudonymization completed",
            original_length=len(message),
            anonymized_length=len(result.text),
        )
        return result.text
