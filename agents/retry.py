"""Bounded fixed-delay retry with error classification."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from config.settings import settings
from utils.errors import TransientError

T = TypeVar("T")

# Lower-cased fragments that mark an error from outside our taxonomy as transient.
RETRYABLE_SIGNATURES = (
    "timeout",
    "could not obtain tab handle",
    "could not retrieve required info",
)


class RetryDecision(str, Enum):
    RETRY = "retry"
    PERMANENT = "permanent"


def classify_error(exc: BaseException) -> RetryDecision:
    """Decide whether ``exc`` deserves another attempt."""
    if isinstance(exc, (TransientError, asyncio.TimeoutError)):
        return RetryDecision.RETRY
    message = str(exc).lower()
    if any(signature in message for signature in RETRYABLE_SIGNATURES):
        return RetryDecision.RETRY
    return RetryDecision.PERMANENT


class RetryPolicy:
    """
    Run an attempt function up to ``max_attempts`` times.

    ``attempt_fn`` receives the 1-based attempt number. A failure classified
    ``PERMANENT`` is re-raised at once; a ``RETRY`` failure sleeps ``delay``
    seconds and tries again until the budget is spent, then the last error is
    re-raised. ``on_retry(attempt, error)`` runs before each retry sleep.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        classify: Callable[[BaseException], RetryDecision] = classify_error,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> None:
        self.max_attempts = settings.max_attempts if max_attempts is None else max_attempts
        self.delay = settings.retry_delay_seconds if delay is None else delay
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._classify = classify
        self._on_retry = on_retry

    async def run(self, attempt_fn: Callable[[int], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await attempt_fn(attempt)
            except Exception as exc:
                if self._classify(exc) is RetryDecision.PERMANENT:
                    logger.error(f"Non-retryable error on attempt {attempt}: {exc}")
                    raise
                if attempt >= self.max_attempts:
                    logger.error(f"Giving up after {attempt} attempts: {exc}")
                    raise
                logger.warning(f"Retryable error on attempt {attempt}/{self.max_attempts}: {exc}")
                if self._on_retry is not None:
                    self._on_retry(attempt, exc)
            await asyncio.sleep(self.delay)
            attempt += 1
