from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List

from loguru import logger

from persona_chat.circuit_breaker import CircuitBreaker
from persona_chat.config import EngineSettings
from persona_chat.fallback_chain import ProviderFallbackChain
from persona_chat.llm import build_providers
from persona_chat.manager import GenerationManager
from persona_chat.repetition import RepetitionDetector
from persona_chat.retry import RetryPolicy
from persona_chat.sanitizer import ResponseSanitizer
from persona_chat.selector import SpeakerSelector
from persona_chat.simulation import run_channel_stream
from persona_chat.states import Persona
from persona_chat.stores import InMemoryConversationStore, InMemoryPersonaStore, load_personas
from persona_chat.templates import FallbackTemplates


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run an autonomous persona chat channel")
    p.add_argument("--personas-json", type=str, help="Path to JSON file with a list of persona objects")
    p.add_argument("--channel", type=str, default="#general", help="Channel name")
    p.add_argument("--channel-language", type=str, default=None, help="Force the channel's dominant language")
    p.add_argument("--turns", type=int, default=10, help="Number of autonomous cycles to run")
    p.add_argument("--interval", type=float, default=0.0, help="Mean seconds between cycles")
    p.add_argument("--operator-message", type=str, default=None, help="Post this message first and have a persona answer it")
    p.add_argument("--degraded", action="store_true", help="Start with providers bypassed (canned replies only)")
    p.add_argument("--log-level", type=str, default="INFO", help="Log level for the stdout sink")
    return p.parse_args()


def default_personas() -> List[Persona]:
    return [
        Persona.from_dict({"nickname": "Nova", "personality": "curious, energetic, playful", "writing_style": {"emoji_usage": "moderate"}}),
        Persona.from_dict({"nickname": "Vesa", "personality": "quiet, introspective", "writing_style": {"verbosity": "terse"}}),
        Persona.from_dict({"nickname": "Iris", "personality": "philosophical, creative", "writing_style": {"verbosity": "detailed"}}),
    ]


async def main() -> None:
    args = parse_args()
    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper(), colorize=True, format="{time:HH:mm:ss} | {level} | {message}")

    settings = EngineSettings.from_env()
    personas = load_personas(args.personas_json) if args.personas_json else default_personas()

    templates = FallbackTemplates(default_language=settings.sanitizer.default_language)
    breaker = CircuitBreaker(settings.breaker)
    if args.degraded:
        breaker.force_open()
    chain = ProviderFallbackChain(
        build_providers(settings.providers),
        breaker=breaker,
        retry_policy=RetryPolicy(settings.retry),
        templates=templates,
        timeout_sec=settings.provider_timeout_sec,
    )
    manager = GenerationManager(
        chain,
        personas=InMemoryPersonaStore({args.channel: personas}),
        conversations=InMemoryConversationStore(limit=max(settings.history_limit, 200)),
        selector=SpeakerSelector(settings.selection),
        sanitizer=ResponseSanitizer(settings.sanitizer, templates=templates),
        detector=RepetitionDetector(settings.repetition),
        history_limit=settings.history_limit,
        channel_languages={args.channel: args.channel_language} if args.channel_language else None,
    )

    transcript: List[Dict[str, Any]] = []
    summary: Dict[str, Any] = {}
    async for event in run_channel_stream(
        manager,
        args.channel,
        turns=args.turns,
        interval_sec=args.interval,
        operator_message=args.operator_message,
    ):
        if event["type"] == "turn":
            transcript.append(event["data"])
        elif event["type"] == "end":
            summary = event["data"]
    print(json.dumps({"summary": summary, "conversation": transcript}, ensure_ascii=False, indent=2))


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
