"""Bounded retry for single remote writes.

Only ``Err(TRANSIENT)`` results are retried; a well-formed rejection is final on
the first attempt. Each attempt runs under its own timeout, and a timeout counts
as transient.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from rollcall.domain.result import Err, is_transient, rejected, transient

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tenacity.wait import wait_base

    from rollcall.domain.result import Result

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WriteRetryPolicy:
    attempts: int = 3
    initial_backoff_seconds: float = 0.5
    max_backoff_seconds: float = 8.0
    jitter_seconds: float = 0.25
    timeout_seconds: float | None = 10.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"Write attempts must be at least 1, got {self.attempts}")

    def wait(self) -> wait_base:
        return wait_exponential(
            multiplier=self.initial_backoff_seconds,
            max=self.max_backoff_seconds,
        ) + wait_random(0, self.jitter_seconds)


@dataclass(frozen=True, slots=True)
class WriteAttempts[T]:
    result: Result[T]
    attempts: int


async def run_write[T](
    operation: Callable[[], Awaitable[Result[T]]],
    *,
    policy: WriteRetryPolicy,
    label: str,
) -> WriteAttempts[T]:
    """Run ``operation`` until it succeeds, fails terminally or runs out of attempts."""

    attempts = 0

    async def attempt() -> Result[T]:
        nonlocal attempts
        attempts += 1
        try:
            if policy.timeout_seconds is None:
                return await operation()
            async with asyncio.timeout(policy.timeout_seconds):
                return await operation()
        except TimeoutError:
            return transient(f"{label} timed out after {policy.timeout_seconds}s")
        except Exception as exc:
            # one broken record must not stop the batch; it is reported as rejected
            log.exception("Unexpected error during %s", label)
            return rejected(f"{label} raised {exc!r}")

    def before_sleep(state: RetryCallState) -> None:
        outcome = state.outcome
        detail = outcome.result() if outcome is not None else None
        log.warning(
            "Retrying %s after attempt %s: %s",
            label,
            state.attempt_number,
            detail.detail if isinstance(detail, Err) else detail,
        )

    def give_up(state: RetryCallState) -> Result[T]:
        outcome = state.outcome
        if outcome is None:
            return transient(f"{label} made no attempt")
        return outcome.result()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=policy.wait(),
        retry=retry_if_result(is_transient),
        before_sleep=before_sleep,
        retry_error_callback=give_up,
    )
    result: Result[T] = await retrying(attempt)
    return WriteAttempts(result=result, attempts=attempts)
