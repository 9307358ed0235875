"""
Step execution for workflow mode.

A step is executed against one of two routes, resolved once per request:

* ``WithAttachment``: the document-capable provider receives the full
  conversation (including the attachment) with the step prompt appended as
  a trailing user message.
* ``TextOnly``: the default provider receives the chat system prompt and
  the synthesized step prompt; conversation history is not sent.

Intermediate steps block until the full text is available. The final step
returns an open TokenStream.
"""

import time
from dataclasses import dataclass

from ..config.settings import WorkflowConfig
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.probe import probe
from ..providers.base import ChatMessage, TokenStream
from ..providers.factory import ModelRoute, ProviderFactory
from .errors import WorkflowStateError
from .prompts import CHAT_SYSTEM_PROMPT, final_step_prompt, intermediate_step_prompt
from .retry import RetryPolicy
from .state import WorkflowState

logger = get_logger(__name__)


@dataclass(frozen=True)
class WithAttachment:
    """Route through the document-capable provider with full history."""

    model: ModelRoute


@dataclass(frozen=True)
class TextOnly:
    """Route through the default provider with a synthesized prompt."""

    model: ModelRoute
    system_prompt: str = CHAT_SYSTEM_PROMPT


ExecutionRoute = WithAttachment | TextOnly


def resolve_route(has_attachment: bool, providers: ProviderFactory) -> ExecutionRoute:
    """Pick the execution route for a request."""
    if has_attachment:
        return WithAttachment(providers.document_route())
    return TextOnly(providers.text_route())


class StepExecutor:
    """Runs individual workflow steps under the retry policy."""

    def __init__(self, retry_policy: RetryPolicy, config: WorkflowConfig | None = None):
        self.retry_policy = retry_policy
        self.config = config or WorkflowConfig()

    async def execute_intermediate(
        self,
        state: WorkflowState,
        index: int,
        messages: list[ChatMessage],
        route: ExecutionRoute,
        trace_id: str | None = None,
    ) -> str:
        """Run non-final step ``index`` and return its full text."""
        if index != state.current_step_index or state.is_final_step:
            raise WorkflowStateError(f"Step {index} is not the current intermediate step")

        step = state.steps[index]
        prompt = intermediate_step_prompt(step, index, state.total_steps, state.context)
        provider, model = route.model.provider, route.model.model
        logger.info(f"Processing step {index + 1}/{state.total_steps}: {step}")

        if isinstance(route, WithAttachment):

            def call():
                return provider.generate_text(
                    model,
                    messages=[*messages, ChatMessage(role="user", content=prompt)],
                    max_tokens=self.config.max_tokens,
                    thinking_budget=self.config.thinking_budget_tokens,
                )

            label = f"Workflow step {index} with file"
        else:

            def call():
                return provider.generate_text(
                    model,
                    system=route.system_prompt,
                    prompt=prompt,
                    max_tokens=self.config.max_tokens,
                )

            label = f"Workflow step {index}"

        start = time.perf_counter()
        with probe("workflow.step", trace_id, step=index, model=model):
            result = await self.retry_policy.execute(call, label)
        get_metrics_collector().record_step(time.perf_counter() - start, final=False)
        return result.text

    async def open_final(
        self,
        state: WorkflowState,
        messages: list[ChatMessage],
        route: ExecutionRoute,
        trace_id: str | None = None,
    ) -> TokenStream:
        """Open the stream for the last step; retries cover opening only."""
        if not state.is_final_step:
            raise WorkflowStateError(
                f"Step {state.current_step_index} is not the final step of {state.total_steps}"
            )

        index = state.current_step_index
        prompt = final_step_prompt(state.current_step, index, state.total_steps, state.context)
        provider, model = route.model.provider, route.model.model
        temperature = self.config.final_temperature
        logger.info(f"Processing final step {index + 1}/{state.total_steps}")

        if isinstance(route, WithAttachment):

            def call():
                return provider.stream_text(
                    model,
                    messages=[*messages, ChatMessage(role="user", content=prompt)],
                    temperature=temperature,
                    max_tokens=self.config.max_tokens,
                )

            label = "Final workflow step with file"
        else:

            def call():
                return provider.stream_text(
                    model,
                    system=route.system_prompt,
                    prompt=prompt,
                    temperature=temperature,
                    max_tokens=self.config.max_tokens,
                )

            label = "Final workflow step"

        start = time.perf_counter()
        with probe("workflow.final_open", trace_id, step=index, model=model):
            stream = await self.retry_policy.execute(call, label)
        get_metrics_collector().record_step(time.perf_counter() - start, final=True)
        return stream
