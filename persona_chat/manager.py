from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional, Set

from loguru import logger

from .agents import PersonaAgent
from .errors import ExhaustionError
from .fallback_chain import ProviderFallbackChain
from .repetition import RepetitionDetector
from .sanitizer import ResponseSanitizer
from .selector import SpeakerSelector
from .states import CycleResult, GenerationContext, Message, Persona
from .stores import ConversationStore, PersonaStore


class GenerationManager:
    """Runs one generation cycle per request: pick speaker, generate, sanitize.

    At most one cycle per channel is in flight; a request for a busy channel
    is dropped rather than queued.
    """

    def __init__(
        self,
        chain: ProviderFallbackChain,
        personas: PersonaStore,
        conversations: ConversationStore,
        selector: Optional[SpeakerSelector] = None,
        sanitizer: Optional[ResponseSanitizer] = None,
        detector: Optional[RepetitionDetector] = None,
        history_limit: int = 40,
        channel_languages: Optional[Dict[str, str]] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.chain = chain
        self.personas = personas
        self.conversations = conversations
        self.selector = selector or SpeakerSelector()
        self.sanitizer = sanitizer or ResponseSanitizer(templates=chain.templates)
        self.detector = detector or RepetitionDetector()
        self.history_limit = history_limit
        self.channel_languages = dict(channel_languages or {})
        self._now = now
        self._in_flight: Set[str] = set()

    def is_busy(self, channel: str) -> bool:
        return channel in self._in_flight

    async def run_cycle(
        self,
        channel: str,
        trigger: Optional[Message] = None,
        persona: Optional[Persona] = None,
        context: GenerationContext = GenerationContext.ACTIVITY,
        follow_up: bool = False,
    ) -> Optional[CycleResult]:
        if channel in self._in_flight:
            logger.info(f"cycle_dropped | channel={channel} | reason=in_flight")
            return None
        self._in_flight.add(channel)
        try:
            return await self._cycle(channel, trigger, persona, context, follow_up)
        finally:
            self._in_flight.discard(channel)

    async def _cycle(
        self,
        channel: str,
        trigger: Optional[Message],
        persona: Optional[Persona],
        context: GenerationContext,
        follow_up: bool,
    ) -> Optional[CycleResult]:
        window = await self.conversations.recent(channel, self.history_limit)
        channel_language = self.channel_languages.get(channel)

        if persona is None:
            candidates = await self.personas.get(channel)
            if trigger is not None:
                candidates = [p for p in candidates if p.nickname != trigger.speaker] or candidates
            if not candidates:
                logger.warning(f"cycle_skipped | channel={channel} | reason=no_personas")
                return None
            persona = self.selector.select(candidates, window, self._now(), channel_language)

        autonomous = trigger is None
        language = channel_language or persona.primary_language
        agent = PersonaAgent(persona, self.detector)
        prompt = agent.build_prompt(window, context, trigger=trigger, follow_up=follow_up, channel=channel)
        config = agent.generation_config(language)

        logger.info(f"cycle_start | channel={channel} | persona={persona.nickname} | ctx={context.value} | autonomous={autonomous}")
        try:
            generated = await self.chain.generate(prompt, config, context=context, persona=persona)
        except ExhaustionError as exc:
            if autonomous:
                logger.warning(f"cycle_silent | channel={channel} | persona={persona.nickname} | {exc}")
                return CycleResult(channel=channel, persona=persona, text="", context=context, silent=True)
            text = self.chain.templates.apology(persona, "ai_error")
            logger.warning(f"cycle_apology | channel={channel} | persona={persona.nickname} | {exc}")
            return CycleResult(channel=channel, persona=persona, text=text, context=context, degraded=True)

        if generated.degraded:
            return CycleResult(channel=channel, persona=persona, text=generated.text, context=context, degraded=True)

        cleaned = await self.sanitizer.sanitize(generated.text, persona, language, autonomous=autonomous)
        result = CycleResult(
            channel=channel,
            persona=persona,
            text=cleaned.text,
            context=context,
            directives=cleaned.directives,
            attachments=cleaned.attachments,
            provider=generated.provider,
            silent=not cleaned.text and not cleaned.attachments,
        )
        one_line = " ".join(cleaned.text.split())
        snippet = one_line if len(one_line) <= 200 else one_line[:200] + "..."
        logger.info(f"cycle_done | channel={channel} | persona={persona.nickname} | provider={generated.provider} | msg='{snippet}'")
        return result
