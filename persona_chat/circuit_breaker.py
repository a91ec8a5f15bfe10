from __future__ import annotations

import random
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

from loguru import logger

from .config import BreakerConfig
from .errors import ErrorKind, classify_error, error_text, parse_retry_hint
from .states import CircuitState


class CircuitBreaker:
    """Process-wide degraded-mode switch for upstream providers.

    Rate-limit failures are counted in a rolling window; crossing the
    threshold opens the circuit for a fixed cooldown. A quota-exhausted
    failure opens it straight away for the provider's retry hint (floored,
    with jitter). Everything else is logged and ignored. While open, the
    fallback chain skips providers entirely.

    Clock and PRNG are injected so tests can drive time and jitter.
    """

    def __init__(
        self,
        config: Optional[BreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or BreakerConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._failures: Deque[float] = deque()
        self._open = False
        self._expires_at: Optional[float] = None
        self._reason = ""

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._failures)

    @property
    def state(self) -> CircuitState:
        is_open = self.is_open()
        with self._lock:
            return CircuitState(is_open=is_open, expires_at=self._expires_at if is_open else None, reason=self._reason if is_open else "")

    def is_open(self) -> bool:
        with self._lock:
            if self._open and self._expires_at is not None and self._clock() > self._expires_at:
                self._close()
                logger.info("breaker_closed | reason=cooldown_elapsed")
            return self._open

    def record_failure(self, error: BaseException, context: str = "") -> None:
        kind = classify_error(error)
        now = self._clock()
        with self._lock:
            if kind is ErrorKind.QUOTA_EXHAUSTED:
                self._open_for(self._quota_duration(error), f"quota exhausted{' - ' + context if context else ''}", now)
                return
            if kind is not ErrorKind.RATE_LIMIT:
                logger.debug(f"breaker_ignored | kind={kind.value} | ctx={context} | err={error_text(error)[:100]}")
                return

            self._failures.append(now)
            self._prune(now)
            logger.info(
                f"breaker_rate_limit | count={len(self._failures)}/{self.config.failure_threshold} "
                f"| window={self.config.failure_window_sec:.0f}s | ctx={context}"
            )
            if not self._open and len(self._failures) >= self.config.failure_threshold:
                self._open_for(self.config.cooldown_sec, f"repeated rate-limit errors{' - ' + context if context else ''}", now)

    def force_open(self, duration: Optional[float] = None) -> None:
        with self._lock:
            seconds = self.config.cooldown_sec if duration is None else duration
            self._open = True
            self._expires_at = self._clock() + seconds
            self._reason = "forced"
        logger.warning(f"breaker_force_open | duration={seconds:.0f}s")

    def force_close(self) -> None:
        with self._lock:
            self._close()
        logger.info("breaker_force_close")

    def _quota_duration(self, error: BaseException) -> float:
        cfg = self.config
        hint = parse_retry_hint(error)
        base = cfg.quota_default_sec if hint is None else hint
        jitter = self._rng.uniform(cfg.quota_jitter_min_sec, cfg.quota_jitter_max_sec)
        return max(cfg.quota_floor_sec, base + jitter)

    def _open_for(self, duration: float, reason: str, now: float) -> None:
        expires_at = now + duration
        if self._open and self._expires_at is not None:
            # never shorten an open circuit
            expires_at = max(expires_at, self._expires_at)
        self._open = True
        self._expires_at = expires_at
        self._reason = reason
        self._failures.clear()
        logger.warning(f"breaker_open | reason={reason} | duration={expires_at - now:.0f}s")

    def _close(self) -> None:
        self._open = False
        self._expires_at = None
        self._reason = ""
        self._failures.clear()

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.failure_window_sec
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()
