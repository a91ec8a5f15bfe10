import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from persona_chat.config import ProviderSettings
from persona_chat.errors import SafetyBlockedError
from persona_chat.llm import ChatModelProvider, build_providers
from persona_chat.states import GenerationConfig


class FakeChat:
    def __init__(self, reply: AIMessage):
        self.reply = reply
        self.seen = []

    async def ainvoke(self, messages):
        self.seen.append(messages)
        return self.reply


@pytest.mark.asyncio
async def test_chat_provider_sends_system_and_human_messages():
    chat = FakeChat(AIMessage(content="  hi there  "))
    provider = ChatModelProvider("fake", "m", chat=chat)
    text = await provider.generate("say hi", GenerationConfig(system_instruction="be nice"))
    assert text == "hi there"
    system, human = chat.seen[0]
    assert isinstance(system, SystemMessage) and system.content == "be nice"
    assert isinstance(human, HumanMessage) and human.content == "say hi"


@pytest.mark.asyncio
async def test_content_filter_raises_safety_error():
    chat = FakeChat(AIMessage(content="", response_metadata={"finish_reason": "content_filter"}))
    provider = ChatModelProvider("fake", "m", chat=chat)
    with pytest.raises(SafetyBlockedError):
        await provider.generate("anything", GenerationConfig())


def test_build_providers_keeps_settings():
    providers = build_providers([
        ProviderSettings("local", "llama3", priority=0, base_url="http://localhost:11434/v1"),
        ProviderSettings("openai", "gpt-4o-mini", priority=1),
    ])
    assert [(p.name, p.model, p.priority) for p in providers] == [("local", "llama3", 0), ("openai", "gpt-4o-mini", 1)]
    assert providers[0].base_url == "http://localhost:11434/v1"
    assert providers[1].capabilities == frozenset({"text"})
