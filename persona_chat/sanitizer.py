from __future__ import annotations

import re
from typing import Optional, Tuple

from loguru import logger

from .config import SanitizerConfig
from .directives import DirectiveDispatcher
from .language import starts_with_any
from .states import Persona, SanitizedResponse
from .templates import FallbackTemplates


_QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”", "‘": "’", "«": "»"}


def strip_wrapping_quotes(text: str) -> str:
    """Remove one pair of matching quotes wrapping the whole text."""
    if len(text) >= 2 and _QUOTE_PAIRS.get(text[0]) == text[-1]:
        return text[1:-1].strip()
    return text


def strip_nickname_prefix(text: str, nickname: str) -> str:
    if not nickname:
        return text
    return re.sub(rf"^\s*{re.escape(nickname)}:\s*", "", text, count=1, flags=re.IGNORECASE)


class ResponseSanitizer:
    """Screens raw model output before it is posted.

    Leaks, wrong-language replies and degenerate repetition are discarded and
    replaced with an in-character apology. Surviving text is length capped,
    stripped of a self-addressed ``nick:`` prefix and wrapping quotes, and its
    directives are resolved.
    """

    def __init__(
        self,
        config: Optional[SanitizerConfig] = None,
        templates: Optional[FallbackTemplates] = None,
        dispatcher: Optional[DirectiveDispatcher] = None,
    ) -> None:
        self.config = config or SanitizerConfig()
        self.templates = templates or FallbackTemplates()
        self.dispatcher = dispatcher or DirectiveDispatcher()

    def clean(
        self,
        raw: str,
        persona: Persona,
        expected_language: Optional[str] = None,
        autonomous: bool = False,
    ) -> SanitizedResponse:
        """Every step except directive resolution."""
        text, reason = self._screen(raw, persona, expected_language)
        if reason:
            return self._discard(persona, reason)
        return self._finish(strip_wrapping_quotes(text), persona, autonomous)

    async def sanitize(
        self,
        raw: str,
        persona: Persona,
        expected_language: Optional[str] = None,
        autonomous: bool = False,
    ) -> SanitizedResponse:
        text, reason = self._screen(raw, persona, expected_language)
        if reason:
            return self._discard(persona, reason)
        result = self._finish(strip_wrapping_quotes(text), persona, autonomous)
        if result.reason == "empty":
            return result
        # a tag-only reply resolves to empty text plus its attachment
        result.text, result.directives, result.attachments = await self.dispatcher.resolve(result.text)
        return result

    def _screen(self, raw: str, persona: Persona, expected_language: Optional[str]) -> Tuple[str, Optional[str]]:
        cfg = self.config
        text = (raw or "").strip()
        low = text.lower()

        leak = next((p for p in cfg.leak_phrases if p.lower() in low), None)
        if leak:
            logger.error(f"sanitize_leak | persona={persona.nickname} | phrase={leak!r} | text={text[:120]!r}")
            return text, "leak"

        if expected_language and expected_language != cfg.default_language:
            starter = starts_with_any(text, cfg.wrong_language_starters.get(expected_language, ()))
            if starter:
                logger.error(f"sanitize_wrong_language | persona={persona.nickname} | expected={expected_language} | starter={starter!r}")
                return text, "language_mismatch"

        if len(text) > cfg.max_length:
            logger.warning(f"sanitize_truncate | persona={persona.nickname} | len={len(text)}")
            text = text[:cfg.truncate_to] + cfg.ellipsis

        lines = text.split("\n")
        meaningful = [line.strip() for line in lines if len(line.strip()) > cfg.trivial_line_chars]
        ratio = len(set(meaningful)) / max(1, len(meaningful))
        if len(lines) > cfg.repetition_min_lines and ratio < cfg.repetition_min_ratio:
            logger.error(f"sanitize_repetition | persona={persona.nickname} | lines={len(lines)} | ratio={ratio:.2f}")
            return text, "repetition"

        stripped = strip_nickname_prefix(text, persona.nickname)
        if stripped != text:
            logger.debug(f"sanitize_self_prefix | persona={persona.nickname}")
        return stripped.strip(), None

    def _discard(self, persona: Persona, reason: str) -> SanitizedResponse:
        return SanitizedResponse(text=self.templates.apology(persona, "ai_error"), discarded=True, reason=reason)

    def _finish(self, text: str, persona: Persona, autonomous: bool) -> SanitizedResponse:
        if text.strip():
            return SanitizedResponse(text=text)
        if autonomous:
            return SanitizedResponse(text="", reason="empty")
        logger.warning(f"sanitize_empty | persona={persona.nickname} | using apology")
        return SanitizedResponse(text=self.templates.apology(persona, "ai_error"), reason="empty")
