"""Bounded exponential backoff shared by the resolver and the committer."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

import anyio

from jwctl.errors import TransientError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Retry transient gateway failures with capped exponential backoff.

    An operation is attempted at most ``max_retries + 1`` times. Each attempt
    runs under the caller's deadline; an attempt that outlives it fails with
    an ambiguous :class:`TransientError`, and no retry is scheduled once the
    next backoff would cross the deadline.
    """

    max_retries: int = 3
    base_delay: float = 0.2
    factor: float = 2.0
    max_delay: float = 5.0

    def delays(self) -> Iterator[float]:
        delay = self.base_delay
        for _ in range(self.max_retries):
            yield min(delay, self.max_delay)
            delay *= self.factor

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        deadline: float,
        description: str = "gateway request",
    ) -> T:
        """Run ``operation`` until it succeeds or fails non-transiently.

        Raises the last :class:`TransientError` once retries or time run out.
        Any other exception propagates from the first attempt that raises it.
        """
        delays = self.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await _attempt(operation, deadline)
            except TransientError as exc:
                delay = next(delays, None)
                if delay is None:
                    logger.warning(
                        "%s failed after %d attempts: %s", description, attempt, exc
                    )
                    raise
                if anyio.current_time() + delay >= deadline:
                    logger.warning(
                        "%s failed; no time left to retry: %s", description, exc
                    )
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self.max_retries + 1,
                    delay,
                    exc,
                )
                await anyio.sleep(delay)


async def _attempt(operation: Callable[[], Awaitable[T]], deadline: float) -> T:
    remaining = deadline - anyio.current_time()
    if remaining <= 0:
        raise TransientError("Deadline exceeded before the request was sent")
    try:
        with anyio.fail_after(remaining):
            return await operation()
    except TimeoutError as exc:
        raise TransientError(
            "Deadline exceeded waiting for the gateway", ambiguous=True
        ) from exc


__all__ = ["RetryPolicy"]
