from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from dotenv import load_dotenv
from loguru import logger


DEFAULT_LANGUAGE = "English"


# Load env from the project root or cwd early so provider keys are visible
try:
    here = Path(__file__).resolve().parents[1]
    env_candidates = [here / ".env", Path.cwd() / ".env"]
    for env_path in env_candidates:
        if env_path.is_file():
            load_dotenv(dotenv_path=str(env_path), override=False)
            break
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"config_invalid_float | name={name} | value={raw!r}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"config_invalid_int | name={name} | value={raw!r}")
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class BreakerConfig:
    failure_window_sec: float = 180.0
    failure_threshold: int = 10
    cooldown_sec: float = 300.0
    quota_floor_sec: float = 60.0
    quota_default_sec: float = 120.0
    quota_jitter_min_sec: float = 5.0
    quota_jitter_max_sec: float = 15.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 10
    base_delay_sec: float = 5.0
    max_jitter_sec: float = 1.0


@dataclass(frozen=True)
class HourRange:
    """Half-open hour interval [start, end); wraps past midnight when start > end."""

    start: int
    end: int

    def contains(self, hour: int) -> bool:
        if self.start <= self.end:
            return self.start <= hour < self.end
        return hour >= self.start or hour < self.end


@dataclass(frozen=True)
class ActivityWindows:
    off_hours_weekend: HourRange = HourRange(22, 6)
    off_hours_weekday: HourRange = HourRange(23, 5)
    morning: HourRange = HourRange(6, 12)
    late: HourRange = HourRange(21, 6)


_LONG_FORM = frozenset({"detailed", "verbose", "extremely_verbose", "novel_length"})


@dataclass(frozen=True)
class TraitProfile:
    """Which personas a time window favors, and how strongly."""

    traits: FrozenSet[str]
    verbosities: FrozenSet[str]
    probability: float


@dataclass(frozen=True)
class SelectionConfig:
    short_cooldown: int = 2
    long_cooldown: int = 5
    overactive_window: int = 7
    overactive_threshold: int = 2
    diversity_probability: float = 0.3
    long_cooldown_probability: float = 0.2
    short_cooldown_probability: float = 0.15
    windows: ActivityWindows = ActivityWindows()
    off_hours: TraitProfile = TraitProfile(
        traits=frozenset({
            "creative", "artistic", "mysterious", "philosophical",
            "rebellious", "independent", "spontaneous", "adventurous", "nocturnal",
        }),
        verbosities=_LONG_FORM,
        probability=0.7,
    )
    morning: TraitProfile = TraitProfile(
        traits=frozenset({"energetic", "optimistic", "morning"}),
        verbosities=_LONG_FORM,
        probability=0.6,
    )
    late: TraitProfile = TraitProfile(
        traits=frozenset({"quiet", "introspective", "night"}),
        verbosities=frozenset({"terse", "brief"}),
        probability=0.2,
    )


@dataclass(frozen=True)
class RepetitionConfig:
    window: int = 10
    min_words: int = 2
    max_words: int = 4
    min_phrase_chars: int = 4
    greeting_lookback: int = 5
    greeting_spam_threshold: int = 2
    follow_up_greeting_threshold: int = 1
    question_window: int = 20
    topic_window: int = 8


LEAK_PHRASES: Tuple[str, ...] = (
    "Follow these instructions",
    "Stay in character",
    "CRITICAL REMINDERS",
    "Respond naturally and conversationally",
    "Do not break character",
    "acknowledge being an AI",
    "writing style guidelines",
    "Seuraat kirjoitustyyliohjeita",
    "Pysyt hahmossa",
    "Vastaat luonnollisesti",
    "Please respond with",
    "autonomous message",
    "Remember to stay",
)

ENGLISH_STARTERS: Tuple[str, ...] = (
    "what", "how", "why", "when", "where", "who",
    "remember", "please", "follow", "stay", "do not", "critical",
)


@dataclass(frozen=True)
class SanitizerConfig:
    leak_phrases: Tuple[str, ...] = LEAK_PHRASES
    # expected language -> starters that betray a reply in some other language
    wrong_language_starters: Dict[str, Tuple[str, ...]] = field(
        default_factory=lambda: {
            "Finnish": ENGLISH_STARTERS,
            "Swedish": ENGLISH_STARTERS,
            "German": ENGLISH_STARTERS,
            "Spanish": ENGLISH_STARTERS,
            "French": ENGLISH_STARTERS,
        }
    )
    default_language: str = DEFAULT_LANGUAGE
    max_length: int = 2000
    truncate_to: int = 1900
    ellipsis: str = "..."
    repetition_min_lines: int = 10
    repetition_min_ratio: float = 0.5
    trivial_line_chars: int = 5


@dataclass(frozen=True)
class ProviderSettings:
    name: str
    model: str
    priority: int = 0
    base_url: Optional[str] = None
    api_key_env: str = "OPENAI_API_KEY"
    capabilities: FrozenSet[str] = frozenset({"text"})


@dataclass(frozen=True)
class EngineSettings:
    breaker: BreakerConfig = BreakerConfig()
    retry: RetryConfig = RetryConfig()
    selection: SelectionConfig = SelectionConfig()
    repetition: RepetitionConfig = RepetitionConfig()
    sanitizer: SanitizerConfig = field(default_factory=SanitizerConfig)
    providers: Tuple[ProviderSettings, ...] = ()
    history_limit: int = 40
    provider_timeout_sec: float = 75.0

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from PERSONA_CHAT_* env vars, keeping defaults for anything unset."""
        breaker = BreakerConfig(
            failure_window_sec=_env_float("PERSONA_CHAT_BREAKER_WINDOW_SEC", 180.0),
            failure_threshold=_env_int("PERSONA_CHAT_BREAKER_THRESHOLD", 10),
            cooldown_sec=_env_float("PERSONA_CHAT_BREAKER_COOLDOWN_SEC", 300.0),
        )
        retry = RetryConfig(
            max_attempts=max(1, _env_int("PERSONA_CHAT_MAX_ATTEMPTS", 10)),
            base_delay_sec=max(0.0, _env_float("PERSONA_CHAT_BACKOFF_BASE_SEC", 5.0)),
        )
        selection = SelectionConfig(
            short_cooldown=_env_int("PERSONA_CHAT_SHORT_COOLDOWN", 2),
            long_cooldown=_env_int("PERSONA_CHAT_LONG_COOLDOWN", 5),
            windows=ActivityWindows(
                off_hours_weekend=HourRange(
                    _env_int("PERSONA_CHAT_WEEKEND_OFF_HOURS_START", 22),
                    _env_int("PERSONA_CHAT_WEEKEND_OFF_HOURS_END", 6),
                ),
                off_hours_weekday=HourRange(
                    _env_int("PERSONA_CHAT_WEEKDAY_OFF_HOURS_START", 23),
                    _env_int("PERSONA_CHAT_WEEKDAY_OFF_HOURS_END", 5),
                ),
            ),
        )
        return cls(
            breaker=breaker,
            retry=retry,
            selection=selection,
            providers=tuple(parse_provider_list(os.getenv("PERSONA_CHAT_PROVIDERS", "openai:gpt-4o-mini"))),
            history_limit=_env_int("PERSONA_CHAT_HISTORY_LIMIT", 40),
            provider_timeout_sec=_env_float("PERSONA_CHAT_PROVIDER_TIMEOUT_SEC", 75.0),
        )


def parse_provider_list(raw: str) -> List[ProviderSettings]:
    """Parse ``name:model,name:model`` into ordered provider settings.

    Per-provider env overrides: ``<NAME>_BASE_URL`` and ``<NAME>_API_KEY_ENV``
    (e.g. OLLAMA_BASE_URL=http://localhost:11434/v1).
    """
    out: List[ProviderSettings] = []
    for rank, item in enumerate(p.strip() for p in (raw or "").split(",")):
        if not item:
            continue
        name, _, model = item.partition(":")
        name = name.strip().lower()
        model = model.strip() or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        prefix = name.upper()
        out.append(
            ProviderSettings(
                name=name,
                model=model,
                priority=rank,
                base_url=os.getenv(f"{prefix}_BASE_URL") or None,
                api_key_env=os.getenv(f"{prefix}_API_KEY_ENV", "OPENAI_API_KEY"),
                capabilities=frozenset(_env_list(f"{prefix}_CAPABILITIES", ("text",))),
            )
        )
    return out
