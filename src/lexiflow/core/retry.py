"""
Retry policy for model calls: bounded attempts, exponential backoff, jitter.

Only errors carrying a transient HTTP status (rate limiting or server side
failures) are retried. Anything else is raised on the first attempt, and the
last error is raised unchanged once attempts run out.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from ..config.settings import RetryConfig
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")


def extract_status_code(error: BaseException) -> int | None:
    """Find an HTTP-like status code on an exception, if it carries one."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            value = getattr(response, attr, None)
            if isinstance(value, int):
                return value
    return None


def status_code_classifier(retryable_codes: frozenset[int]) -> Callable[[BaseException], bool]:
    """Build the default predicate: retry only on the given status codes."""

    def is_retryable(error: BaseException) -> bool:
        return extract_status_code(error) in retryable_codes

    return is_retryable


def backoff_delay(
    attempt: int, config: RetryConfig, rand: Callable[[], float] = random.random
) -> float:
    """Delay in milliseconds before retrying after 0-indexed ``attempt``."""
    base = min(config.max_delay_ms, config.initial_delay_ms * config.backoff_factor**attempt)
    jitter = config.jitter_factor * base
    return base + (rand() * 2 - 1) * jitter


class wait_backoff_with_jitter(wait_base):
    """Tenacity wait strategy delegating to :func:`backoff_delay` (in seconds)."""

    def __init__(self, config: RetryConfig, rand: Callable[[], float] = random.random):
        self.config = config
        self.rand = rand

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is 1-indexed and counts the attempt that just failed
        return backoff_delay(retry_state.attempt_number - 1, self.config, self.rand) / 1000.0


class RetryPolicy:
    """
    Generic retry executor wrapping any zero-argument async operation.

    Args:
        config: Attempt count, delays and retryable status codes
        is_retryable: Classification predicate; defaults to the status code check
        sleep: Awaitable sleep, injectable so tests do not wait
        rand: Uniform [0, 1) source for the jitter
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        is_retryable: Callable[[BaseException], bool] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.config = config or RetryConfig()
        self.is_retryable = is_retryable or status_code_classifier(
            self.config.retryable_status_codes
        )
        self.sleep = sleep
        self.rand = rand

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run ``operation`` under the policy and return its result."""
        max_attempts = self.config.max_attempts

        def log_before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            status = extract_status_code(error)
            delay_ms = retry_state.next_action.sleep * 1000
            logger.warning(
                f"{label} failed with status {status}. Retrying in {delay_ms:.0f}ms...",
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
            )
            get_metrics_collector().record_retry(label, status)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_backoff_with_jitter(self.config, self.rand),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=log_before_sleep,
            sleep=self.sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    logger.info(
                        f"Attempting {label} "
                        f"(attempt {attempt.retry_state.attempt_number}/{max_attempts})"
                    )
                    return await operation()
        except Exception as e:
            if self.is_retryable(e):
                logger.error(f"{label} failed after {max_attempts} attempts: {e}")
            else:
                logger.error(f"Non-retryable error in {label}: {e}")
            raise

        # AsyncRetrying either returns from inside the loop or raises
        raise RuntimeError(f"{label} exited the retry loop without a result")
