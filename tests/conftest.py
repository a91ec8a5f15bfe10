"""pytest configuration and shared fakes for persona_chat tests."""
import random

import pytest

from persona_chat.circuit_breaker import CircuitBreaker
from persona_chat.fallback_chain import ProviderFallbackChain
from persona_chat.llm import CallableProvider
from persona_chat.retry import RetryPolicy
from persona_chat.states import Message, Persona, WritingStyle
from persona_chat.templates import FallbackTemplates


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedRandom(random.Random):
    """random() returns queued values; everything else behaves normally."""

    def __init__(self, values, seed: int = 0):
        super().__init__(seed)
        self.values = list(values)

    def random(self):
        if self.values:
            return self.values.pop(0)
        return super().random()


def scripted_provider(name, outcomes, priority=0):
    """Provider returning / raising each outcome in turn (last one repeats)."""
    calls = []

    async def fn(prompt, config):
        calls.append(prompt)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    provider = CallableProvider(name, fn, priority=priority)
    provider.calls = calls
    return provider


def msg(speaker, text="just chatting about stuff"):
    return Message(speaker=speaker, text=text)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def breaker(clock, rng):
    return CircuitBreaker(clock=clock, rng=rng)


@pytest.fixture
def make_chain(breaker, sleep, rng):
    def _make(providers, timeout_sec=5.0):
        return ProviderFallbackChain(
            providers,
            breaker=breaker,
            retry_policy=RetryPolicy(sleep=sleep, rng=rng),
            templates=FallbackTemplates(rng=rng),
            timeout_sec=timeout_sec,
        )
    return _make


@pytest.fixture
def nova():
    return Persona(nickname="Nova")


@pytest.fixture
def finnish_persona():
    return Persona(nickname="Aino", languages=("Finnish", "English"))


@pytest.fixture
def terse_persona():
    return Persona(nickname="Vesa", style=WritingStyle(verbosity="terse"))
