import random

import pytest

from persona_chat.circuit_breaker import CircuitBreaker
from persona_chat.config import BreakerConfig
from persona_chat.errors import NetworkError, QuotaExhaustedError, RateLimitError, SafetyBlockedError, ZeroQuotaError

from conftest import FakeClock


def rate_limited():
    return Exception("429 Too Many Requests")


def test_opens_at_threshold(breaker):
    for _ in range(9):
        breaker.record_failure(rate_limited())
    assert not breaker.is_open()
    assert breaker.failure_count == 9

    breaker.record_failure(rate_limited())
    assert breaker.is_open()
    # window is cleared on open
    assert breaker.failure_count == 0


def test_eleven_failures_in_170s_then_cooldown(breaker, clock):
    start = clock.now
    opened_at = None
    for i in range(11):
        clock.now = start + i * 17
        breaker.record_failure(rate_limited(), context="activity")
        if opened_at is None and breaker.is_open():
            opened_at = clock.now
    assert opened_at is not None
    expires = breaker.state.expires_at
    # the 11th failure arrived while open and must not extend the cooldown
    assert expires == pytest.approx(opened_at + 300)

    clock.now = opened_at + 200
    assert breaker.is_open()

    clock.now = opened_at + 301
    assert not breaker.is_open()
    assert breaker.state.is_open is False


def test_failures_outside_window_do_not_count(breaker, clock):
    for _ in range(9):
        breaker.record_failure(rate_limited())
    clock.advance(181)
    breaker.record_failure(rate_limited())
    assert not breaker.is_open()
    assert breaker.failure_count == 1


@pytest.mark.parametrize("error", [
    NetworkError("socket hang up"),
    SafetyBlockedError("blocked"),
    ZeroQuotaError("billing"),
    ValueError("malformed"),
])
def test_other_errors_are_ignored(breaker, error):
    for _ in range(20):
        breaker.record_failure(error)
    assert not breaker.is_open()
    assert breaker.failure_count == 0


def test_quota_exhausted_opens_for_at_least_the_floor(breaker, clock):
    start = clock.now
    breaker.record_failure(QuotaExhaustedError("quota", retry_hint=30))
    assert breaker.is_open()
    clock.now = start + 59.9
    assert breaker.is_open()
    clock.now = start + 60.1
    assert not breaker.is_open()


@pytest.mark.parametrize("seed", range(20))
def test_quota_duration_bounds(seed):
    clock = FakeClock()
    b = CircuitBreaker(clock=clock, rng=random.Random(seed))
    b.record_failure(Exception('RESOURCE_EXHAUSTED {"retryDelay": "120s"}'))
    duration = b.state.expires_at - clock.now
    assert 125 <= duration <= 135


def test_quota_without_hint_uses_default(clock, rng):
    b = CircuitBreaker(clock=clock, rng=rng)
    b.record_failure(QuotaExhaustedError("quota exceeded"))
    duration = b.state.expires_at - clock.now
    assert 125 <= duration <= 135


def test_open_circuit_is_never_shortened(breaker, clock):
    breaker.force_open(600)
    breaker.record_failure(QuotaExhaustedError("quota", retry_hint=10))
    assert breaker.state.expires_at == pytest.approx(clock.now + 600)


def test_manual_overrides(breaker, clock):
    breaker.force_open()
    assert breaker.is_open()
    assert breaker.state.reason == "forced"
    assert breaker.state.expires_at == pytest.approx(clock.now + 300)

    breaker.force_close()
    assert not breaker.is_open()

    breaker.force_open(5)
    clock.advance(6)
    assert not breaker.is_open()


def test_custom_config(clock, rng):
    b = CircuitBreaker(BreakerConfig(failure_threshold=2, cooldown_sec=10), clock=clock, rng=rng)
    b.record_failure(RateLimitError("slow down"))
    b.record_failure(RateLimitError("slow down"))
    assert b.is_open()
    clock.advance(10.5)
    assert not b.is_open()
