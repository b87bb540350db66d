"""Bounded retry with exponential backoff for provider calls.

Each attempt runs under a per-call timeout. When a turn deadline is
given, the per-call timeout is shortened to the time left, and running
out of turn time is reported as TimeBudgetExceededError instead of a
retriable provider timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from juris.core.config import settings
from juris.core.exceptions import (
    ProviderError,
    ProviderTimeoutError,
    TimeBudgetExceededError,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Retry configuration for provider calls.

    Attributes:
        max_retries: Retries after the first attempt
        initial_delay_seconds: Delay before the first retry
        max_delay_seconds: Upper bound of a single delay
        backoff_multiplier: Multiplier for exponential backoff
        timeout_seconds: Per-attempt timeout
    """

    max_retries: int = 2
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0
    timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_retries=settings.PROVIDER_MAX_RETRIES,
            initial_delay_seconds=settings.PROVIDER_RETRY_INITIAL_DELAY,
            max_delay_seconds=settings.PROVIDER_RETRY_MAX_DELAY,
            backoff_multiplier=settings.PROVIDER_RETRY_BACKOFF,
            timeout_seconds=settings.LLM_REQUEST_TIMEOUT_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (0-based) failed attempt."""
        return min(
            self.initial_delay_seconds * (self.backoff_multiplier**attempt),
            self.max_delay_seconds,
        )


class Deadline:
    """Wall-clock budget shared by every suspension point of a turn."""

    def __init__(self, budget_seconds: float) -> None:
        self.budget_seconds = budget_seconds
        self._loop = asyncio.get_running_loop()
        self.expires_at = self._loop.time() + budget_seconds

    def remaining(self) -> float:
        return self.expires_at - self._loop.time()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self) -> None:
        """Raise TimeBudgetExceededError once the budget is spent."""
        if self.expired:
            raise TimeBudgetExceededError(self.budget_seconds)


T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    deadline: Deadline | None = None,
    operation_name: str = "provider call",
) -> T:
    """Run ``operation`` with timeout and exponential backoff.

    Retries ProviderError instances flagged ``retriable`` and
    ConnectionError. Anything else propagates immediately.

    Raises:
        ProviderError: If the last attempt failed or the error is not retriable
        TimeBudgetExceededError: If the turn deadline ran out
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_retries + 1):
        timeout = policy.timeout_seconds
        bounded_by_deadline = False
        if deadline is not None:
            deadline.check()
            remaining = deadline.remaining()
            if remaining < timeout:
                timeout = remaining
                bounded_by_deadline = True

        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except TimeoutError:
            if bounded_by_deadline:
                raise TimeBudgetExceededError(deadline.budget_seconds) from None
            last_error = ProviderTimeoutError(timeout)
        except ProviderError as e:
            if not e.retriable:
                raise
            last_error = e
        except ConnectionError as e:
            last_error = e

        logger.warning(
            f"{operation_name} failed (attempt {attempt + 1}/{policy.max_retries + 1}): "
            f"{last_error}",
            extra={
                "context": {
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "error_type": type(last_error).__name__,
                }
            },
        )

        # Don't delay after last attempt
        if attempt < policy.max_retries:
            delay = policy.delay_for(attempt)
            if deadline is not None and deadline.remaining() <= delay:
                break
            await asyncio.sleep(delay)

    if isinstance(last_error, ProviderError):
        raise last_error
    raise ProviderError(str(last_error)) from last_error


__all__ = ["Deadline", "RetryPolicy", "call_with_retry"]
