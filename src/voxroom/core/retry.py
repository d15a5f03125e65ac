"""Retry with linear backoff for connection establishment."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from voxroom.models.config import ReconnectPolicy

logger = logging.getLogger("voxroom.core.retry")

T = TypeVar("T")

__all__ = ["ReconnectPolicy", "backoff_delay", "retry_with_backoff"]


def backoff_delay(policy: ReconnectPolicy, attempt: int) -> float:
    """Delay in seconds after failed attempt number *attempt* (1-based)."""
    return min(policy.base_delay_seconds * attempt, policy.max_delay_seconds)


async def retry_with_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    policy: ReconnectPolicy,
    *args: Any,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    **kwargs: Any,
) -> T:
    """Execute *fn* up to ``policy.max_attempts`` times with linear backoff.

    Only exceptions in *retry_on* are retried.  Raises the last exception if
    all attempts are exhausted.
    """
    last_exc: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except retry_on as exc:
            last_exc = exc
            if attempt >= policy.max_attempts:
                break
            delay = backoff_delay(policy, attempt)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt,
                policy.max_attempts,
                type(exc).__name__,
                delay,
                extra={"attempt": attempt, "delay": delay},
            )
            await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc
