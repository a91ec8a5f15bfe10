"""
Generation orchestration for a chat community of AI personas.

Modules:
- errors: error taxonomy + classification of provider failures
- config: dotenv loading + tunable settings dataclasses
- circuit_breaker: process-wide degraded-mode switch
- retry: bounded exponential backoff for rate limits
- llm: Provider base + LangChain chat model provider
- fallback_chain: ordered provider fallback with canned degraded output
- templates: persona-flavored fallback lines and apologies
- language / repetition: greeting tables, repeated-phrase detection
- selector: next-speaker choice with cooldowns and time-of-day bias
- directives / sanitizer: output screening and [TAG: payload] resolution
- agents: persona prompt builder
- manager: one generation cycle per channel with in-flight guard
- simulation: autonomous channel loop emitting events
"""
