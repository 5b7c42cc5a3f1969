"""Bounded retry with capped exponential backoff.

Only ``TransportError`` is retried. Application failures are returned as
results by the transport and pass straight through.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .errors import RetriesExhausted, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 5.0


@dataclass
class RetryPolicy:
    """Retry a coroutine factory on transport failures.

    Attributes:
        max_attempts: Total attempts, including the first.
        base_delay: Delay in seconds after the first failed attempt.
        max_delay: Upper bound for any single delay.
        sleep: Awaitable sleep, replaceable in tests.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "command") -> T:
        """Await ``operation()`` until it succeeds or attempts run out.

        Raises:
            RetriesExhausted: The final attempt also raised ``TransportError``.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await operation()
            except TransportError as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    f"[Retry] {label} attempt {attempt}/{self.max_attempts} failed "
                    f"({e}); retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"[Retry] {label} succeeded on attempt {attempt}")
            return result

        logger.error(f"[Retry] {label} failed after {self.max_attempts} attempts: {last_error}")
        raise RetriesExhausted(label, self.max_attempts, last_error) from last_error
