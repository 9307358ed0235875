"""
Workflow orchestrator: plan, run intermediate steps, stream the final step.

``WorkflowOrchestrator.run`` is an async generator of stream parts. Progress
frames are yielded before the model call they describe, final-step tokens
are forwarded as they arrive, and any failure ends the stream with a single
error frame instead of an exception.
"""

from collections.abc import AsyncIterator

from ..config.settings import WorkflowConfig
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import add_span_event
from ..providers.base import ChatMessage, StreamFinished, TextDelta, TokenStream
from .planner import StepPlanner
from .progress import FinishPart, ProgressChannel, StreamPart, TextPart
from .state import Phase, WorkflowState
from .state_machine import StateMachine
from .step_executor import ExecutionRoute, StepExecutor

logger = get_logger(__name__)


class WorkflowOrchestrator:
    """
    Drives one workflow per ``run`` call.

    The orchestrator itself is stateless across requests: each run owns a
    fresh WorkflowState and the caller supplies the ProgressChannel, enabled
    for chat workflow mode and disabled for the plain workflow endpoint.
    """

    def __init__(
        self,
        planner: StepPlanner,
        executor: StepExecutor,
        config: WorkflowConfig | None = None,
        machine: StateMachine | None = None,
    ):
        self.planner = planner
        self.executor = executor
        self.config = config or WorkflowConfig()
        self.machine = machine or StateMachine("workflow")

    async def run(
        self,
        user_input: str,
        messages: list[ChatMessage],
        route: ExecutionRoute,
        progress: ProgressChannel,
        trace_id: str | None = None,
    ) -> AsyncIterator[StreamPart]:
        state = WorkflowState(user_input=user_input)
        deadline = self.config.max_duration_seconds
        stream: TokenStream | None = None
        logger.info("Starting workflow", route=type(route).__name__)

        try:
            state.check_deadline(deadline)
            plan = await self.planner.parse_steps(user_input, trace_id)
            state.set_plan(plan.steps)

            if not state.steps:
                logger.warning("Empty plan, completing workflow without model steps")
                self.machine.transition(state, Phase.COMPLETE)
                part = progress.complete(state)
                if part:
                    yield part
                yield FinishPart()
                return

            for index in range(state.total_steps - 1):
                state.advance_to(index)
                self.machine.transition(state, Phase.EXECUTING)
                part = progress.publish(state)
                if part:
                    yield part

                state.check_deadline(deadline)
                result = await self.executor.execute_intermediate(
                    state, index, messages, route, trace_id
                )
                state.append_context(result)
                add_span_event("workflow.step_completed", {"step": index, "chars": len(result)})

            state.advance_to(state.total_steps - 1)
            self.machine.transition(state, Phase.FINAL_EXECUTING)
            part = progress.publish(state)
            if part:
                yield part

            state.check_deadline(deadline)
            stream = await self.executor.open_final(state, messages, route, trace_id)
            finished = StreamFinished()
            async for event in stream:
                if isinstance(event, TextDelta):
                    yield TextPart(event.text)
                else:
                    finished = event

            self.machine.transition(state, Phase.COMPLETE)
            part = progress.complete(state)
            if part:
                yield part
            yield FinishPart(finished.finish_reason or "stop", finished.usage)
            logger.timed("Workflow completed", state.elapsed * 1000, total_steps=state.total_steps)

        except Exception as e:
            logger.exception(f"Error during workflow processing: {e}", **state.snapshot())
            self.machine.fail(state, str(e))
            get_metrics_collector().record_workflow_failure(type(e).__name__)
            yield progress.fail()

        finally:
            if stream is not None:
                await stream.aclose()
