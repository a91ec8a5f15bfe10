from __future__ import annotations

import os
import time
from functools import lru_cache
from typing import Awaitable, Callable, FrozenSet, Iterable, List, Optional

from loguru import logger
from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage

from .config import ProviderSettings
from .errors import SafetyBlockedError
from .states import GenerationConfig


@lru_cache(maxsize=8)
def get_openai_chat(
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    base_url: Optional[str] = None,
    api_key_env: str = "OPENAI_API_KEY",
) -> Optional[ChatOpenAI]:
    """Return a cached LangChain ChatOpenAI client using env configuration.

    Env vars:
      - OPENAI_API_KEY (or the variable named by api_key_env)
      - OPENAI_MODEL (optional; default: gpt-4o-mini)
      - OPENAI_TEMPERATURE / OPENAI_MAX_TOKENS (optional)

    Local OpenAI-compatible servers (e.g. Ollama) accept any key, so a
    placeholder is used when base_url is set and no key is configured.
    """
    api_key = os.getenv(api_key_env)
    if not api_key:
        if not base_url:
            logger.error(f"{api_key_env} not set; cannot initialize chat client")
            return None
        api_key = "not-needed"
    mdl = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    if temperature is None:
        try:
            temperature = float(os.getenv("OPENAI_TEMPERATURE", "1"))
        except ValueError:
            temperature = 1.0
    try:
        max_tokens = int(os.getenv("OPENAI_MAX_TOKENS", "400"))
    except ValueError:
        max_tokens = None
    logger.debug(f"Initializing chat model={mdl} temperature={temperature} base_url={base_url or 'default'}")
    kwargs = {"model": mdl, "temperature": temperature, "api_key": api_key}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if base_url:
        kwargs["base_url"] = base_url
    return ChatOpenAI(**kwargs)


class Provider:
    """One upstream text generator. Stateless; errors are raised, not returned."""

    name: str = "provider"
    model: str = ""
    priority: int = 0
    capabilities: FrozenSet[str] = frozenset({"text"})

    async def generate(self, prompt: str, config: GenerationConfig) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, model={self.model!r}, priority={self.priority})"


class ChatModelProvider(Provider):
    """Provider backed by a LangChain chat model (OpenAI or compatible endpoint)."""

    def __init__(
        self,
        name: str,
        model: str,
        priority: int = 0,
        base_url: Optional[str] = None,
        api_key_env: str = "OPENAI_API_KEY",
        capabilities: Iterable[str] = ("text",),
        chat=None,
    ) -> None:
        self.name = name
        self.model = model
        self.priority = priority
        self.base_url = base_url
        self.api_key_env = api_key_env
        self.capabilities = frozenset(capabilities)
        self._chat = chat

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "ChatModelProvider":
        return cls(
            name=settings.name,
            model=settings.model,
            priority=settings.priority,
            base_url=settings.base_url,
            api_key_env=settings.api_key_env,
            capabilities=settings.capabilities,
        )

    def _client(self, config: GenerationConfig):
        if self._chat is not None:
            return self._chat
        chat = get_openai_chat(self.model, config.temperature, self.base_url, self.api_key_env)
        if chat is None:
            raise RuntimeError(f"chat client for provider {self.name} not initialized; set {self.api_key_env}")
        if config.max_tokens:
            chat = chat.bind(max_tokens=config.max_tokens)
        return chat

    async def generate(self, prompt: str, config: GenerationConfig) -> str:
        messages = []
        if config.system_instruction:
            messages.append(SystemMessage(content=config.system_instruction))
        messages.append(HumanMessage(content=prompt))
        t0 = time.perf_counter()
        result = await self._client(config).ainvoke(messages)
        dt = time.perf_counter() - t0
        meta = getattr(result, "response_metadata", None) or {}
        if meta.get("finish_reason") == "content_filter":
            raise SafetyBlockedError(f"{self.name}: response blocked by content_filter")
        content = result.content if isinstance(result.content, str) else "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in (result.content or [])
        )
        logger.info(f"llm_call | provider={self.name} model={self.model} dt={dt:.2f}s chars={len(content)}")
        return content.strip()


class CallableProvider(Provider):
    """Adapts a plain ``async def fn(prompt, config) -> str`` into a Provider."""

    def __init__(
        self,
        name: str,
        fn: Callable[[str, GenerationConfig], Awaitable[str]],
        priority: int = 0,
        model: str = "",
        capabilities: Iterable[str] = ("text",),
    ) -> None:
        self.name = name
        self.model = model
        self.priority = priority
        self.capabilities = frozenset(capabilities)
        self._fn = fn

    async def generate(self, prompt: str, config: GenerationConfig) -> str:
        return await self._fn(prompt, config)


def build_providers(settings: Iterable[ProviderSettings]) -> List[Provider]:
    providers: List[Provider] = [ChatModelProvider.from_settings(s) for s in settings]
    logger.info(f"providers_built | order={[p.name for p in sorted(providers, key=lambda p: p.priority)]}")
    return providers
