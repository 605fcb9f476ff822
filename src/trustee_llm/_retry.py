"""Retry logic with exponential backoff for provider calls."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from trustee_llm.errors import MalformedResponseError
from trustee_llm.types.config import RetryPolicy

T = TypeVar("T")

logger = logging.getLogger(__name__)


def calculate_delay(attempt: int, policy: RetryPolicy) -> float:
    """Compute the delay for a given retry attempt.

    Uses exponential backoff clamped to *policy.max_delay*, with optional
    jitter.
    """
    delay = min(
        policy.base_delay * (policy.backoff_multiplier ** attempt),
        policy.max_delay,
    )
    if policy.jitter:
        delay *= random.uniform(0.5, 1.5)
    return delay


async def with_retry(fn: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    """Await *fn()*, retrying according to *policy* on failure.

    Non-retryable errors propagate immediately. Malformed responses get their
    own, usually smaller, budget. A ``retry_after`` hint longer than
    ``max_delay`` is not waited out; the error propagates instead.
    """
    malformed = 0
    attempt = 0

    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= policy.max_retries:
                raise

            # Unknown errors default to retryable
            if not getattr(exc, "retryable", True):
                raise

            if isinstance(exc, MalformedResponseError):
                malformed += 1
                if malformed > policy.max_malformed_retries:
                    raise

            retry_after: float | None = getattr(exc, "retry_after", None)
            if retry_after is not None and retry_after > policy.max_delay:
                raise

            if retry_after is not None:
                delay = retry_after
            else:
                delay = calculate_delay(attempt, policy)

            logger.warning(
                "Provider call failed (%s: %s); retry %d/%d in %.2fs",
                type(exc).__name__, exc, attempt + 1, policy.max_retries, delay,
            )
            if policy.on_retry is not None:
                policy.on_retry(attempt, exc, delay)

            await asyncio.sleep(delay)
            attempt += 1
