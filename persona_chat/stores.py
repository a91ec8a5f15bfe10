from __future__ import annotations

import json
from collections import defaultdict, deque
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Protocol, Union

from loguru import logger

from .states import Message, Persona


class PersonaStore(Protocol):
    async def get(self, channel: str) -> List[Persona]:
        ...


class ConversationStore(Protocol):
    async def recent(self, channel: str, n: int) -> List[Message]:
        ...

    async def append(self, channel: str, message: Message) -> None:
        ...


class InMemoryPersonaStore:
    def __init__(self, channels: Optional[Dict[str, Iterable[Persona]]] = None) -> None:
        self._channels: Dict[str, List[Persona]] = {k: list(v) for k, v in (channels or {}).items()}

    def add(self, channel: str, persona: Persona) -> None:
        self._channels.setdefault(channel, []).append(persona)

    async def get(self, channel: str) -> List[Persona]:
        return list(self._channels.get(channel, []))


class InMemoryConversationStore:
    """Bounded per-channel history; oldest messages fall off."""

    def __init__(self, limit: int = 200) -> None:
        self.limit = limit
        self._history: Dict[str, Deque[Message]] = defaultdict(lambda: deque(maxlen=self.limit))

    async def append(self, channel: str, message: Message) -> None:
        self._history[channel].append(message)

    async def recent(self, channel: str, n: int) -> List[Message]:
        if n <= 0:
            return []
        return list(self._history[channel])[-n:]


def load_personas(path: Union[str, Path]) -> List[Persona]:
    """Load personas from a JSON file holding a list (or ``{"personas": [...]}``)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("personas", [])
    personas = [Persona.from_dict(obj) for obj in data if isinstance(obj, dict)]
    personas = [p for p in personas if p.nickname]
    logger.info(f"personas_loaded | path={path} | count={len(personas)}")
    return personas
