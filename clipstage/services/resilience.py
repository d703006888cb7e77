"""Retry with exponential backoff for upstream calls.

Only ``TransientUpstreamError`` is retried. A rate-limit response carries its
own ``retry_after`` which takes precedence over the computed delay.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from clipstage.config import Settings
from clipstage.exceptions import TransientUpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 30.0
    max_total_delay: float = 60.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackoffPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            max_total_delay=settings.retry_max_total_seconds,
            jitter=settings.retry_jitter,
        )

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay before retry number ``attempt`` (1-based), jittered by +/- ``jitter``."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        spread = delay * self.jitter
        delay += (rng or random).uniform(-spread, spread)
        return max(0.0, delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    op_name: str,
    policy: BackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds, a non-transient error is raised,
    or the attempt/total-delay budget is spent."""
    waited = 0.0
    attempt = 1
    while True:
        try:
            return await operation()
        except TransientUpstreamError as e:
            if attempt >= policy.max_attempts:
                logger.error(f"{op_name} failed after {attempt} attempts: {e}")
                raise
            delay = e.retry_after if e.retry_after is not None else policy.delay_for(attempt)
            if waited + delay > policy.max_total_delay:
                logger.error(
                    f"{op_name} giving up after {attempt} attempts: "
                    f"next delay {delay:.1f}s exceeds retry budget {policy.max_total_delay:.1f}s"
                )
                raise
            logger.warning(
                f"{op_name} attempt {attempt}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f} seconds..."
            )
            await sleep(delay)
            waited += delay
            attempt += 1
