"""
Step planner: decomposes free-form user input into an ordered step list.

Planning never fails the request. Provider errors (after retries) and
malformed model output are logged and turned into an empty plan, which the
orchestrator completes immediately.
"""

from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.probe import probe
from ..providers.factory import ModelRoute
from .prompts import STEP_EXTRACTION_SYSTEM_PROMPT
from .retry import RetryPolicy

logger = get_logger(__name__)

STEP_PLAN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"steps": {"type": "array", "items": {"type": "string"}}},
    "required": ["steps"],
    "additionalProperties": False,
}


class StepPlan(BaseModel):
    """Ordered, non-blank step descriptions."""

    steps: list[str] = Field(default_factory=list)

    @field_validator("steps")
    @classmethod
    def strip_blank_steps(cls, v: list[str]) -> list[str]:
        return [step.strip() for step in v if step.strip()]

    @property
    def is_empty(self) -> bool:
        return not self.steps


class StepPlanner:
    """Turns user input into a StepPlan with one structured model call."""

    def __init__(self, route: ModelRoute, retry_policy: RetryPolicy):
        self.route = route
        self.retry_policy = retry_policy

    async def parse_steps(self, raw_input: str, trace_id: str | None = None) -> StepPlan:
        """Extract the step list from ``raw_input``; empty plan on any failure."""
        logger.info("Parsing workflow steps", input_chars=len(raw_input))
        try:
            with probe("workflow.plan", trace_id, model=self.route.model):
                result = await self.retry_policy.execute(
                    lambda: self.route.provider.generate_structured(
                        self.route.model,
                        STEP_PLAN_SCHEMA,
                        STEP_EXTRACTION_SYSTEM_PROMPT,
                        raw_input,
                    ),
                    "parse_steps",
                )
                plan = StepPlan.model_validate(result)
        except ValidationError as e:
            logger.error(f"Planner returned malformed output: {e}")
            get_metrics_collector().record_planner_fallback()
            return StepPlan()
        except Exception as e:
            logger.error(f"Cannot parse steps: {e}")
            get_metrics_collector().record_planner_fallback()
            return StepPlan()

        logger.info(f"Parsed {len(plan.steps)} steps successfully")
        get_metrics_collector().record_plan(len(plan.steps))
        return plan
