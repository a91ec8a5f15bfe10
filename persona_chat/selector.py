from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from loguru import logger

from .config import SelectionConfig, TraitProfile
from .language import dominant_language
from .states import Message, Persona


@dataclass
class Tier:
    """One rung of a weighted pick.

    A non-empty tier is taken with ``probability``. On a miss an exclusive
    tier settles on the pool's fallback; a non-exclusive one lets the next
    tier try.
    """

    name: str
    members: List[Persona]
    probability: float = 1.0
    exclusive: bool = False


class TieredPool:
    def __init__(self, tiers: Sequence[Tier], fallback: List[Persona], rng: random.Random) -> None:
        self.tiers = list(tiers)
        self.fallback = fallback
        self._rng = rng

    def resolve(self) -> tuple:
        """Return ``(tier_name, members)`` for the first tier that wins."""
        for tier in self.tiers:
            if not tier.members:
                continue
            if tier.probability >= 1.0 or self._rng.random() < tier.probability:
                return tier.name, tier.members
            if tier.exclusive:
                return "fallback", self.fallback
        return "fallback", self.fallback


class SpeakerSelector:
    """Picks who speaks next in a channel, favoring variety over recency."""

    def __init__(self, config: Optional[SelectionConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.config = config or SelectionConfig()
        self._rng = rng or random.Random()

    def select(
        self,
        candidates: Sequence[Persona],
        window: Sequence[Message],
        now: Optional[datetime] = None,
        channel_language: Optional[str] = None,
    ) -> Persona:
        if not candidates:
            raise ValueError("no candidate personas to select from")
        cfg = self.config
        now = now or datetime.now()
        speakers = [m.speaker for m in window if m.is_conversational]

        language = channel_language or dominant_language(p.primary_language for p in candidates)
        pool = [p for p in candidates if p.primary_language == language] or list(candidates)

        short = set(speakers[-cfg.short_cooldown:]) if cfg.short_cooldown > 0 else set()
        long = set(speakers[-cfg.long_cooldown:]) if cfg.long_cooldown > 0 else set()
        last = speakers[-1] if speakers else None

        time_pool = self._time_pool(pool, now)
        tiers = [
            Tier("diversity", pool, cfg.diversity_probability),
            Tier("long_cooldown", [p for p in pool if p.nickname not in long], cfg.long_cooldown_probability, exclusive=True),
            Tier("short_cooldown", [p for p in pool if p.nickname not in short], cfg.short_cooldown_probability, exclusive=True),
            Tier("avoid_last", [p for p in pool if p.nickname != last] if last else [], 1.0),
        ]
        tier_name, chosen = TieredPool(tiers, time_pool, self._rng).resolve()
        chosen = chosen or pool

        counts = Counter(speakers[-cfg.overactive_window:])
        overactive = {name for name, n in counts.items() if n >= cfg.overactive_threshold}
        if overactive:
            filtered = [p for p in chosen if p.nickname not in overactive]
            if filtered:
                chosen = filtered
            else:
                logger.debug(f"selector_overactive_fallback | overactive={sorted(overactive)}")

        persona = self._rng.choice(chosen)
        logger.debug(
            f"selector_pick | persona={persona.nickname} | tier={tier_name} | lang={language} "
            f"| pool={len(pool)} | chosen_from={len(chosen)}"
        )
        return persona

    def _time_pool(self, pool: List[Persona], now: datetime) -> List[Persona]:
        cfg = self.config
        windows = cfg.windows
        hour = now.hour
        weekend = now.weekday() >= 5
        off_hours = windows.off_hours_weekend if weekend else windows.off_hours_weekday

        if off_hours.contains(hour):
            profile = cfg.off_hours
        elif windows.morning.contains(hour):
            profile = cfg.morning
        elif windows.late.contains(hour):
            profile = cfg.late
        else:
            return pool

        matching = [p for p in pool if _fits(p, profile)]
        if matching and self._rng.random() < profile.probability:
            return matching
        return pool


def _fits(persona: Persona, profile: TraitProfile) -> bool:
    return persona.has_trait(profile.traits) or persona.style.verbosity in profile.verbosities
