"""Exponential backoff with jitter, and the retry loop built on it."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY_MS = 30_000
JITTER_RATIO = 0.2


class FetchError(Exception):
    """An upstream request failure, tagged as retryable or fatal.

    ``retry_after_ms`` carries an explicit wait hint from the upstream
    (e.g. a Retry-After header) when one was provided.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        retry_after_ms: float | None = None,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.retry_after_ms = retry_after_ms
        self.status_code = status_code
        self.url = url


def nominal_delay_ms(
    attempt: int, base_delay_ms: float, max_delay_ms: float = DEFAULT_MAX_DELAY_MS
) -> float:
    """``min(base * 2**(attempt-1), max)`` for a 1-indexed attempt."""
    if attempt < 1:
        raise ValueError(f"attempt is 1-indexed, got {attempt}")
    return min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)


def backoff_delay_ms(
    attempt: int,
    base_delay_ms: float,
    *,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    retry_after_ms: float | None = None,
    rng: random.Random | None = None,
) -> float:
    """Delay before the retry that follows ``attempt``.

    A positive ``retry_after_ms`` is returned as-is. Otherwise the nominal
    delay is spread by up to +/-20%.
    """
    if retry_after_ms is not None and retry_after_ms > 0:
        return retry_after_ms

    delay = nominal_delay_ms(attempt, base_delay_ms, max_delay_ms)
    spread = delay * JITTER_RATIO
    uniform = (rng or random).uniform
    return delay + uniform(-spread, spread)


async def with_retry(
    fn: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay_ms: float,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``fn(attempt)`` until it succeeds or a fatal/final failure.

    Only ``FetchError`` with ``retryable=True`` is retried. On the last
    attempt the original error is re-raised.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt = 1
    while True:
        try:
            return await fn(attempt)
        except FetchError as exc:
            if not exc.retryable or attempt >= max_attempts:
                raise
            delay_ms = backoff_delay_ms(
                attempt,
                base_delay_ms,
                max_delay_ms=max_delay_ms,
                retry_after_ms=exc.retry_after_ms,
            )
            log.info(
                "Retrying after attempt %d/%d in %.0fms: %s",
                attempt,
                max_attempts,
                delay_ms,
                exc,
            )
            await sleep(delay_ms / 1000)
            attempt += 1
