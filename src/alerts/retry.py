"""Bounded retry with linear backoff."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff_secs: float = 1.0,
) -> T:
    """Await *operation* until it succeeds or *max_attempts* are used up.

    After failed attempt ``n`` the executor sleeps ``n * backoff_secs``
    before trying again.  Every exception is retried; once attempts run out
    the last one is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts:
                logger.error(
                    "retry_exhausted",
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = attempt * backoff_secs
            logger.warning(
                "retry_scheduled",
                attempt=attempt,
                max_attempts=max_attempts,
                delay=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
            attempt += 1
