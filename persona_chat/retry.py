from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .config import RetryConfig
from .errors import ErrorKind, RateLimitError, as_generation_error, classify_error, error_text


T = TypeVar("T")

# Kinds that end the retry loop on the first occurrence
_FAIL_FAST = frozenset({
    ErrorKind.NETWORK,
    ErrorKind.ZERO_QUOTA,
    ErrorKind.QUOTA_EXHAUSTED,
    ErrorKind.SAFETY_BLOCKED,
})


@dataclass
class RetryOptions:
    max_attempts: Optional[int] = None
    base_delay_sec: Optional[float] = None
    context: str = ""


class RetryPolicy:
    """Bounded exponential backoff for rate-limited / overloaded calls.

    Only rate-limit and overload errors are retried. Network, zero-quota,
    quota-exhausted and safety errors are raised as their typed error on the
    first occurrence; unclassified errors propagate unchanged.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def backoff_delay(self, attempt: int, base_delay_sec: Optional[float] = None) -> float:
        """Delay after failed attempt *attempt* (1-based)."""
        base = self.config.base_delay_sec if base_delay_sec is None else base_delay_sec
        return base * (2 ** (attempt - 1)) + self._rng.random() * self.config.max_jitter_sec

    async def execute(self, call: Callable[[], Awaitable[T]], options: Optional[RetryOptions] = None) -> T:
        opts = options or RetryOptions()
        max_attempts = max(1, opts.max_attempts if opts.max_attempts is not None else self.config.max_attempts)
        ctx = f" | ctx={opts.context}" if opts.context else ""

        last_error: Optional[BaseException] = None
        for attempt in range(1, max_attempts + 1):
            try:
                return await call()
            except Exception as exc:
                kind = classify_error(exc)
                logger.debug(f"retry_attempt_failed | attempt={attempt}/{max_attempts} | kind={kind.value}{ctx} | err={error_text(exc)[:160]}")
                if kind in _FAIL_FAST:
                    if kind is ErrorKind.QUOTA_EXHAUSTED:
                        logger.warning(f"retry_quota_exhausted | attempt={attempt}{ctx} | skipping remaining retries")
                    wrapped = as_generation_error(exc, kind)
                    if wrapped is exc:
                        raise
                    raise wrapped from exc
                if kind is not ErrorKind.RATE_LIMIT:
                    raise
                last_error = exc
                if attempt < max_attempts:
                    delay = self.backoff_delay(attempt, opts.base_delay_sec)
                    logger.warning(f"retry_backoff | attempt={attempt}/{max_attempts} | delay={delay:.2f}s{ctx}")
                    await self._sleep(delay)

        logger.error(f"retry_exhausted | attempts={max_attempts}{ctx}")
        raise RateLimitError(f"exhausted {max_attempts} attempts: {error_text(last_error)}") from last_error
