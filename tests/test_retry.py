import random

import pytest

from persona_chat.config import RetryConfig
from persona_chat.errors import NetworkError, QuotaExhaustedError, RateLimitError, SafetyBlockedError, ZeroQuotaError
from persona_chat.retry import RetryOptions, RetryPolicy

from conftest import RecordingSleep


def failing(errors, result="ok"):
    calls = []

    async def call():
        calls.append(1)
        if len(calls) <= len(errors):
            raise errors[len(calls) - 1]
        return result

    call.calls = calls
    return call


@pytest.mark.asyncio
async def test_retries_rate_limits_then_succeeds(sleep, rng):
    policy = RetryPolicy(sleep=sleep, rng=rng)
    call = failing([Exception("429"), Exception("model overloaded")])
    assert await policy.execute(call) == "ok"
    assert len(call.calls) == 3
    assert len(sleep.delays) == 2
    assert 5.0 <= sleep.delays[0] < 6.0
    assert 10.0 <= sleep.delays[1] < 11.0


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(sleep, rng):
    policy = RetryPolicy(RetryConfig(max_attempts=4), sleep=sleep, rng=rng)
    last = Exception("429 Too Many Requests")
    call = failing([Exception("429")] * 3 + [last] * 5)
    with pytest.raises(RateLimitError) as info:
        await policy.execute(call)
    assert len(call.calls) == 4
    assert len(sleep.delays) == 3
    assert info.value.__cause__ is last


@pytest.mark.asyncio
async def test_per_call_options_override(sleep, rng):
    policy = RetryPolicy(sleep=sleep, rng=rng)
    call = failing([Exception("429")] * 10)
    with pytest.raises(RateLimitError):
        await policy.execute(call, RetryOptions(max_attempts=2, base_delay_sec=0.5))
    assert len(call.calls) == 2
    assert 0.5 <= sleep.delays[0] < 1.5


@pytest.mark.asyncio
@pytest.mark.parametrize("raw, expected", [
    (Exception("socket hang up"), NetworkError),
    (Exception('{"quota_limit_value":"0"}'), ZeroQuotaError),
    (Exception("RESOURCE_EXHAUSTED"), QuotaExhaustedError),
    (Exception("blocked by safety settings"), SafetyBlockedError),
])
async def test_fail_fast_kinds(sleep, rng, raw, expected):
    policy = RetryPolicy(sleep=sleep, rng=rng)
    call = failing([raw] * 10)
    with pytest.raises(expected):
        await policy.execute(call)
    assert len(call.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_unclassified_errors_propagate_unchanged(sleep, rng):
    policy = RetryPolicy(sleep=sleep, rng=rng)
    boom = ValueError("malformed payload")
    call = failing([boom])
    with pytest.raises(ValueError) as info:
        await policy.execute(call)
    assert info.value is boom
    assert len(call.calls) == 1


@pytest.mark.parametrize("seed", range(5))
def test_backoff_delay_bounds(seed):
    policy = RetryPolicy(sleep=RecordingSleep(), rng=random.Random(seed))
    for attempt in range(1, 11):
        floor = 5.0 * 2 ** (attempt - 1)
        delay = policy.backoff_delay(attempt)
        assert floor <= delay < floor + 1.0
