from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

from loguru import logger

from .circuit_breaker import CircuitBreaker
from .errors import (
    ErrorKind,
    ExhaustionError,
    ProviderAttempt,
    SafetyBlockedError,
    ZeroQuotaError,
    classify_error,
    error_text,
)
from .llm import Provider
from .retry import RetryOptions, RetryPolicy
from .states import GenerationConfig, GenerationContext, GenerationResult, Persona
from .templates import FallbackTemplates


class ProviderFallbackChain:
    """Tries providers in priority order until one returns usable text.

    The breaker is consulted once, when a request enters the chain: while it
    is open no provider is called and a canned line is returned instead.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        templates: Optional[FallbackTemplates] = None,
        timeout_sec: float = 75.0,
    ) -> None:
        self.providers = list(providers)
        self.breaker = breaker or CircuitBreaker()
        self.retry_policy = retry_policy or RetryPolicy()
        self.templates = templates or FallbackTemplates()
        self.timeout_sec = timeout_sec

    def ordered(self, providers: Optional[Sequence[Provider]] = None) -> List[Provider]:
        return sorted(providers if providers is not None else self.providers, key=lambda p: p.priority)

    async def generate(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        providers: Optional[Sequence[Provider]] = None,
        context: GenerationContext = GenerationContext.ACTIVITY,
        persona: Optional[Persona] = None,
    ) -> GenerationResult:
        config = config or GenerationConfig()
        who = persona.nickname if persona else "-"

        if self.breaker.is_open():
            text = self.templates.fallback_text(persona, context)
            logger.warning(f"chain_degraded | ctx={context.value} | persona={who} | bypassing providers")
            return GenerationResult(text=text, provider=None, degraded=True)

        timeout = config.timeout_sec or self.timeout_sec
        attempts: List[ProviderAttempt] = []
        for provider in self.ordered(providers):
            tag = f"{provider.name}/{context.value}"

            async def call(p: Provider = provider) -> str:
                return await asyncio.wait_for(p.generate(prompt, config), timeout=timeout)

            try:
                text = await self.retry_policy.execute(call, RetryOptions(max_attempts=config.max_attempts, context=tag))
            except ZeroQuotaError as exc:
                logger.error(f"chain_zero_quota | provider={provider.name} | check billing/config | err={error_text(exc)[:160]}")
                attempts.append(ProviderAttempt(provider.name, ErrorKind.ZERO_QUOTA, error_text(exc)))
                continue
            except SafetyBlockedError as exc:
                logger.warning(f"chain_safety_blocked | provider={provider.name} | persona={who}")
                attempts.append(ProviderAttempt(provider.name, ErrorKind.SAFETY_BLOCKED, error_text(exc)))
                continue
            except Exception as exc:
                kind = classify_error(exc)
                self.breaker.record_failure(exc, tag)
                logger.warning(f"chain_provider_failed | provider={provider.name} | kind={kind.value} | err={error_text(exc)[:160]}")
                attempts.append(ProviderAttempt(provider.name, kind, error_text(exc)))
                continue

            if not (text or "").strip():
                logger.warning(f"chain_empty_candidate | provider={provider.name} | persona={who}")
                attempts.append(ProviderAttempt(provider.name, ErrorKind.OTHER, "empty response"))
                continue

            if attempts:
                logger.info(f"chain_fallback_used | provider={provider.name} | skipped={len(attempts)}")
            return GenerationResult(text=text.strip(), provider=provider.name, degraded=False)

        logger.error(f"chain_exhausted | persona={who} | attempts={len(attempts)}")
        raise ExhaustionError(attempts)
