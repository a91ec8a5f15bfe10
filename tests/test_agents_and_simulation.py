import random

import pytest

from persona_chat.agents import PersonaAgent
from persona_chat.manager import GenerationManager
from persona_chat.selector import SpeakerSelector
from persona_chat.simulation import run_channel_stream
from persona_chat.states import GenerationContext, Persona
from persona_chat.stores import InMemoryConversationStore, InMemoryPersonaStore

from conftest import RecordingSleep, msg, scripted_provider


def test_prompt_carries_anti_repetition_hints(nova):
    window = [
        msg("Nova", "hello everyone!"),
        msg("Nova", "good morning folks"),
        msg("Sam", "the pizza place downtown is great"),
        msg("Nova", "is the pizza place downtown open late?"),
    ]
    prompt = PersonaAgent(nova).build_prompt(window, GenerationContext.ACTIVITY, channel="#food")
    assert "CHANNEL: #food" in prompt
    assert "Do not greet" in prompt
    assert "AVOID_PHRASES:" in prompt and "pizza place downtown" in prompt
    assert "ALREADY_ASKED: is the pizza place downtown open late?" in prompt
    assert "Sam: the pizza place downtown is great" in prompt


def test_quiet_channel_prompt(nova):
    prompt = PersonaAgent(nova).build_prompt([], GenerationContext.REACTION)
    assert "(channel is quiet)" in prompt
    assert "AVOID" not in prompt


def test_system_instruction_names_non_default_language(finnish_persona, nova):
    assert "Reply only in Finnish" in PersonaAgent(finnish_persona).build_system()
    assert "Reply only in" not in PersonaAgent(nova).build_system()
    config = PersonaAgent(nova).generation_config(timeout_sec=3)
    assert "PROFILE_CONTEXT" in config.system_instruction
    assert config.timeout_sec == 3


@pytest.mark.asyncio
async def test_channel_stream_emits_events_and_records_history(make_chain):
    personas = [Persona("A"), Persona("B"), Persona("C")]
    conversations = InMemoryConversationStore()
    provider = scripted_provider("p", ["first thought", "second thought", "third thought"])
    manager = GenerationManager(
        make_chain([provider]),
        personas=InMemoryPersonaStore({"#c": personas}),
        conversations=conversations,
        selector=SpeakerSelector(rng=random.Random(9)),
    )
    sleep = RecordingSleep()
    events = [e async for e in run_channel_stream(
        manager, "#c", turns=3, interval_sec=2.0, operator_message="what's everyone up to?", sleep=sleep,
    )]

    assert events[0]["type"] == "start"
    assert events[-1] == {"type": "end", "data": {"channel": "#c", "spoken": 4, "silent": 0}}
    turns = [e["data"] for e in events if e["type"] == "turn"]
    assert turns[0]["speaker"] == "operator"
    assert turns[1]["context"] == "operator"
    assert len(turns) == 5
    history = await conversations.recent("#c", 10)
    assert [m.text for m in history][:2] == ["what's everyone up to?", "first thought"]
    assert len(sleep.delays) == 2
    assert all(1.0 <= d < 3.0 for d in sleep.delays)


@pytest.mark.asyncio
async def test_channel_stream_reports_silence(make_chain):
    manager = GenerationManager(
        make_chain([scripted_provider("p", [ValueError("boom")])]),
        personas=InMemoryPersonaStore({"#c": [Persona("A")]}),
        conversations=InMemoryConversationStore(),
    )
    events = [e async for e in run_channel_stream(manager, "#c", turns=2)]
    assert [e["type"] for e in events] == ["start", "silent", "silent", "end"]
    assert events[-1]["data"]["silent"] == 2
