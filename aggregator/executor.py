"""Bounded retry with a per-attempt deadline."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .engines.errors import ProviderError, ProviderTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def execute(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    timeout_ms: int,
    backoff_ms: int = 0,
    label: str = "operation",
) -> T:
    """Run `operation` until it succeeds or `max_retries` retries are spent.

    Each attempt is raced against `timeout_ms`. A timed-out attempt is
    cancelled and counts as a failure. The error raised is the last
    attempt's error. Non-retryable provider errors stop immediately.
    """

    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive")

    attempts = max_retries + 1
    last_error: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout_ms / 1000)
        except ProviderError as exc:
            last_error = exc
            if not exc.retryable:
                raise
        except asyncio.TimeoutError as exc:
            last_error = ProviderTimeout(
                f"{label} timed out after {timeout_ms}ms"
            )
            last_error.__cause__ = exc
        except Exception as exc:
            last_error = exc

        logger.debug(
            "executor.attempt.failed label=%s attempt=%s/%s err=%s",
            label,
            attempt,
            attempts,
            last_error,
        )
        if attempt < attempts and backoff_ms > 0:
            delay = backoff_ms * attempt * (0.5 + random.random() / 2)
            await asyncio.sleep(delay / 1000)

    if last_error is None:  # pragma: no cover - safety net
        raise RuntimeError(f"{label} failed without exception")
    raise last_error
