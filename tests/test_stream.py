"""
Tests for progress frames and data stream protocol encoding.
"""

import json

import pytest

from lexiflow.api.stream import data_stream_response, encode_part, encode_stream
from lexiflow.core.errors import WorkflowStateError
from lexiflow.core.progress import (
    DataPart,
    ErrorPart,
    FinishPart,
    ProgressChannel,
    ProgressEvent,
    TextPart,
)
from lexiflow.core.state import WorkflowState

from conftest import collect


def state_at(index: int, *steps: str) -> WorkflowState:
    state = WorkflowState(user_input="input")
    state.set_plan(list(steps))
    state.advance_to(index)
    return state


class TestProgressChannel:
    """Test progress event emission rules."""

    def test_event_shape(self):
        channel = ProgressChannel()
        part = channel.publish(state_at(0, "a", "b"))

        assert part == DataPart(
            {"workflowSteps": ["a", "b"], "currentStep": 0, "isComplete": False}
        )

    def test_steps_must_increase(self):
        channel = ProgressChannel()
        channel.publish(state_at(1, "a", "b", "c"))

        with pytest.raises(WorkflowStateError):
            channel.publish(state_at(1, "a", "b", "c"))
        with pytest.raises(WorkflowStateError):
            channel.publish(state_at(0, "a", "b", "c"))

    def test_nothing_after_completion(self):
        channel = ProgressChannel()
        state = state_at(0, "a")
        channel.publish(state)
        channel.complete(state)

        with pytest.raises(WorkflowStateError):
            channel.publish(state)

    def test_disabled_channel_drops_progress_but_not_errors(self):
        channel = ProgressChannel(enabled=False)

        assert channel.publish(state_at(0, "a")) is None
        assert channel.fail() == DataPart({"error": "Workflow processing failed"})
        assert channel.events == [{"error": "Workflow processing failed"}]
        assert channel.progress_events == []

    def test_events_recorded_in_order(self):
        channel = ProgressChannel()
        channel.publish(state_at(0, "a", "b"))
        channel.publish(state_at(1, "a", "b"))
        channel.complete(state_at(1, "a", "b"))

        assert [(e["currentStep"], e["isComplete"]) for e in channel.progress_events] == [
            (0, False),
            (1, False),
            (1, True),
        ]

    def test_event_model_aliases(self):
        event = ProgressEvent(workflow_steps=["a"], current_step=0, is_complete=True)

        assert event.to_frame() == {"workflowSteps": ["a"], "currentStep": 0, "isComplete": True}
        assert ProgressEvent.model_validate(event.to_frame()) == event


class TestEncoding:
    """Test protocol line encoding."""

    def test_text_part(self):
        assert encode_part(TextPart('Say "hi"\n')) == '0:"Say \\"hi\\"\\n"\n'

    def test_text_part_keeps_unicode(self):
        assert encode_part(TextPart("• café")) == '0:"• café"\n'

    def test_data_part_wrapped_in_array(self):
        line = encode_part(DataPart({"currentStep": 1}))

        assert line.startswith("2:")
        assert json.loads(line[2:]) == [{"currentStep": 1}]

    def test_error_part(self):
        assert encode_part(ErrorPart("An error occurred.")) == '3:"An error occurred."\n'

    def test_finish_part(self):
        assert encode_part(FinishPart()) == 'd:{"finishReason":"stop"}\n'

    def test_finish_part_with_usage(self):
        line = encode_part(FinishPart("length", {"prompt_tokens": 12, "completion_tokens": 30}))

        assert json.loads(line[2:]) == {
            "finishReason": "length",
            "usage": {"promptTokens": 12, "completionTokens": 30},
        }

    def test_anthropic_usage_keys(self):
        line = encode_part(FinishPart("end_turn", {"input_tokens": 5, "output_tokens": 7}))

        assert json.loads(line[2:])["usage"] == {"promptTokens": 5, "completionTokens": 7}

    def test_unknown_part(self):
        with pytest.raises(TypeError):
            encode_part("raw string")

    @pytest.mark.asyncio
    async def test_stream_failure_becomes_error_line(self):
        async def parts():
            yield TextPart("partial")
            raise RuntimeError("provider went away")

        lines = await collect(encode_stream(parts()))

        assert lines == ['0:"partial"\n', '3:"An error occurred."\n']


class TestDataStreamResponse:
    """Test the streaming response wrapper."""

    @pytest.mark.asyncio
    async def test_headers_and_release(self):
        released = []

        async def parts():
            try:
                yield TextPart("first")
                yield TextPart("never consumed")
            finally:
                released.append(True)

        source = parts()
        response = data_stream_response(source, "trace-7")
        await anext(source)

        await response.background()

        assert response.headers["x-vercel-ai-data-stream"] == "v1"
        assert response.headers["x-request-id"] == "trace-7"
        assert released == [True]
