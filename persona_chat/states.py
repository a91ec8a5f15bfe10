from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import DEFAULT_LANGUAGE


class MessageKind(Enum):
    MESSAGE = "message"
    ACTION = "action"
    SYSTEM = "system"
    JOIN = "join"
    PART = "part"
    QUIT = "quit"


# Channel bookkeeping, never persona speech
NON_CONVERSATIONAL = frozenset({MessageKind.SYSTEM, MessageKind.JOIN, MessageKind.PART, MessageKind.QUIT})


class GenerationContext(Enum):
    ACTIVITY = "activity"
    REACTION = "reaction"
    OPERATOR = "operator"
    PRIVATE_MESSAGE = "private_message"


@dataclass(frozen=True)
class WritingStyle:
    formality: str = "casual"
    verbosity: str = "moderate"
    humor: str = "none"
    emoji_usage: str = "rare"
    punctuation: str = "standard"


@dataclass(frozen=True)
class Persona:
    nickname: str
    languages: Tuple[str, ...] = (DEFAULT_LANGUAGE,)
    personality: str = ""
    style: WritingStyle = WritingStyle()
    traits: Tuple[str, ...] = ()
    # context value -> custom canned lines that replace the built-in pools
    fallback_messages: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    @property
    def primary_language(self) -> str:
        return self.languages[0] if self.languages else DEFAULT_LANGUAGE

    def has_trait(self, names) -> bool:
        """True if any of *names* is a trait tag or a whole word of the personality text."""
        tags = {t.lower() for t in self.traits}
        text = self.personality.lower()
        return any(n in tags or re.search(rf"\b{re.escape(n)}\b", text) for n in names)

    def custom_fallbacks(self, context: "GenerationContext") -> Tuple[str, ...]:
        for key, lines in self.fallback_messages:
            if key == context.value:
                return lines
        return ()

    @classmethod
    def from_dict(cls, obj: Dict) -> "Persona":
        style = obj.get("writing_style") or obj.get("style") or {}
        fallbacks = obj.get("fallback_messages") or {}
        return cls(
            nickname=str(obj.get("nickname") or obj.get("name_id") or obj.get("id") or ""),
            languages=tuple(obj.get("languages") or (DEFAULT_LANGUAGE,)),
            personality=str(obj.get("personality") or ""),
            style=WritingStyle(**{k: v for k, v in style.items() if k in WritingStyle.__dataclass_fields__}),
            traits=tuple(obj.get("traits") or ()),
            fallback_messages=tuple((k, tuple(v)) for k, v in fallbacks.items() if v),
        )


@dataclass(frozen=True)
class Message:
    speaker: str
    text: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    kind: MessageKind = MessageKind.MESSAGE

    @property
    def is_conversational(self) -> bool:
        return self.kind not in NON_CONVERSATIONAL


@dataclass
class GenerationConfig:
    system_instruction: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout_sec: Optional[float] = None
    # lower than the policy default for cheap / latency-sensitive calls
    max_attempts: Optional[int] = None


@dataclass
class GenerationResult:
    text: str
    provider: Optional[str] = None
    degraded: bool = False


@dataclass(frozen=True)
class CircuitState:
    is_open: bool = False
    expires_at: Optional[float] = None
    reason: str = ""


@dataclass(frozen=True)
class Directive:
    name: str
    kind: str
    payload: str
    raw: str


@dataclass(frozen=True)
class Attachment:
    kind: str
    data: bytes


@dataclass
class SanitizedResponse:
    text: str
    directives: List[Directive] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    discarded: bool = False
    reason: Optional[str] = None


@dataclass
class CycleResult:
    channel: str
    persona: Persona
    text: str
    context: GenerationContext = GenerationContext.ACTIVITY
    directives: List[Directive] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    provider: Optional[str] = None
    degraded: bool = False
    silent: bool = False
