"""Retry and settle helpers shared by the oracle client, crawler and executor."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

T = TypeVar("T")

# Linear backoff between oracle attempts: 1s, 2s, ...
DEFAULT_BACKOFFS_MS: Sequence[int] = (1000, 2000, 3000)

logger = logging.getLogger(__name__)


async def settle(seconds: float) -> None:
    """Wait for the UI to reach a stable state; there is no idle signal to wait on."""
    if seconds > 0:
        await asyncio.sleep(seconds)


async def with_retries(
    async_op: Callable[[], Awaitable[T]],
    attempts: int,
    backoffs_ms: Optional[Sequence[int]] = None,
    *,
    label: str = "operation",
) -> T:
    """Run ``async_op`` up to ``attempts`` times, sleeping between failures.

    Cancellation is never retried. The last error is re-raised.
    """
    attempts = max(1, attempts)
    delays = list(backoffs_ms if backoffs_ms is not None else DEFAULT_BACKOFFS_MS) or [0]
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            return await async_op()
        except Exception as exc:  # noqa: BLE001 - propagate final failure
            last_error = exc
            logger.warning("%s failed on attempt %s/%s: %s", label, attempt + 1, attempts, exc)
            if attempt == attempts - 1:
                break
            delay = delays[attempt] if attempt < len(delays) else delays[-1]
            await asyncio.sleep(delay / 1000.0)

    if last_error:
        raise last_error
    raise RuntimeError("async_op completed without returning a value")
