"""Minimal async retry for opening the provider stream.

Only the open phase is retried. Once the first event has been read the stream
is not restartable, so mid-stream failures surface to the caller instead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import random
import time
from typing import TYPE_CHECKING, TypeVar

from bedrock_chat.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter."""

    max_attempts: int = 3
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True  # "full jitter" when enabled
    max_elapsed_s: float | None = 15.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")


def should_retry_open(exc: BaseException) -> bool:
    """Return True when opening the stream should be attempted again.

    Cancellation is never retried; transport errors are retried only when the
    transport marked them retryable.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    return isinstance(exc, TransportError) and exc.retryable


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, TransportError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


def _compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    # retry_index starts at 1 for the first retry sleep.
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    return random.random() * base  # noqa: S311


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry_open,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Run an async factory with bounded retries.

    *on_retry* is called with ``(attempt, exc, delay)`` before each sleep.
    """
    start = time.monotonic()
    last_exc: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await factory()
        except Exception as exc:
            last_exc = exc
            if not should_retry(exc) or attempt >= policy.max_attempts:
                raise

            retry_after = _retry_after_from_error(exc)
            delay = _compute_backoff_delay(policy, retry_index=attempt)
            if retry_after is not None:
                delay = max(delay, retry_after)

            if policy.max_elapsed_s is not None:
                remaining = policy.max_elapsed_s - (time.monotonic() - start)
                if remaining <= 0:
                    raise
                delay = min(delay, remaining)

            if on_retry is not None:
                on_retry(attempt, exc, delay)
            if delay > 0:
                await asyncio.sleep(delay)

    if last_exc is None:  # pragma: no cover
        raise RuntimeError("retry_async exhausted without an exception")
    raise last_exc
