from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

from loguru import logger

from .errors import error_text
from .states import Attachment, Directive


MediaResult = Union[str, bytes, None]
Resolver = Callable[[str], Union[MediaResult, Awaitable[MediaResult]]]

# [NAME: payload]; payload is everything up to the first closing bracket
DIRECTIVE_RE = re.compile(r"\[([A-Za-z_]+):\s*(.*?)\]")


def imdb_search_link(query: str) -> Optional[str]:
    query = (query or "").strip()
    if not query:
        return None
    return f"https://www.imdb.com/find/?q={quote(query, safe='')}&s=tt"


def spotify_search_link(query: str) -> Optional[str]:
    query = (query or "").strip()
    if not query:
        return None
    return f"https://open.spotify.com/search/{quote(query, safe='')}"


@dataclass(frozen=True)
class DirectiveHandler:
    kind: str
    # used when no media service answers
    builtin: Optional[Callable[[str], Optional[str]]] = None


DIRECTIVE_HANDLERS: Dict[str, DirectiveHandler] = {
    "GENERATE_IMAGE": DirectiveHandler("image"),
    "AUDIO": DirectiveHandler("audio"),
    "SEARCH_YOUTUBE": DirectiveHandler("video"),
    "SEARCH_SOUNDCLOUD": DirectiveHandler("track"),
    "SEARCH_SPOTIFY": DirectiveHandler("track", spotify_search_link),
    "SEARCH_IMDB": DirectiveHandler("recommendation", imdb_search_link),
}


class MediaService:
    """Resolves a directive payload into a URL, a binary buffer, or nothing."""

    async def resolve(self, kind: str, payload: str) -> MediaResult:
        raise NotImplementedError


class MediaRegistry(MediaService):
    """MediaService assembled from independently optional per-kind resolvers.

    Resolvers may be plain or async callables taking the payload.
    """

    def __init__(self, **resolvers: Optional[Resolver]) -> None:
        self._resolvers: Dict[str, Resolver] = {k: v for k, v in resolvers.items() if v is not None}

    def register(self, kind: str, resolver: Resolver) -> None:
        self._resolvers[kind] = resolver

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self._resolvers)

    async def resolve(self, kind: str, payload: str) -> MediaResult:
        resolver = self._resolvers.get(kind)
        if resolver is None:
            return None
        result = resolver(payload)
        if inspect.isawaitable(result):
            result = await result
        return result


def parse_directives(text: str) -> List[Directive]:
    """All known directives in *text*, in order. Unknown bracket tags are ignored."""
    out: List[Directive] = []
    for m in DIRECTIVE_RE.finditer(text or ""):
        name = m.group(1).upper()
        handler = DIRECTIVE_HANDLERS.get(name)
        if handler is None:
            continue
        out.append(Directive(name=name, kind=handler.kind, payload=m.group(2).strip(), raw=m.group(0)))
    return out


def _splice(text: str, raw: str, replacement: str) -> str:
    idx = text.find(raw)
    if idx < 0:
        return text
    before, after = text[:idx], text[idx + len(raw):]
    if not replacement and before.endswith(" ") and after.startswith(" "):
        after = after[1:]
    return before + replacement + after


class DirectiveDispatcher:
    """Resolves side-effect directives after the reply text has been decided.

    A URL result replaces its tag in place, a bytes result becomes an
    attachment and the tag is dropped, and a missing result or a failing
    resolver just drops the tag.
    """

    def __init__(self, media: Optional[MediaService] = None) -> None:
        self.media = media or MediaRegistry()

    async def resolve(self, text: str) -> Tuple[str, List[Directive], List[Attachment]]:
        directives = parse_directives(text)
        attachments: List[Attachment] = []
        for directive in directives:
            result = await self._resolve_one(directive)
            if isinstance(result, (bytes, bytearray)):
                attachments.append(Attachment(kind=directive.kind, data=bytes(result)))
                text = _splice(text, directive.raw, "")
            elif isinstance(result, str) and result.strip():
                text = _splice(text, directive.raw, result.strip())
            else:
                text = _splice(text, directive.raw, "")
        if directives:
            logger.info(f"directives_resolved | count={len(directives)} | attachments={len(attachments)}")
        return text.strip(), directives, attachments

    async def _resolve_one(self, directive: Directive) -> MediaResult:
        result: MediaResult = None
        if directive.payload:
            try:
                result = await self.media.resolve(directive.kind, directive.payload)
            except Exception as exc:
                logger.warning(f"directive_failed | name={directive.name} | payload={directive.payload[:80]} | err={error_text(exc)}")
                result = None
        if result is None:
            handler = DIRECTIVE_HANDLERS[directive.name]
            if handler.builtin is not None:
                result = handler.builtin(directive.payload)
        if result is None:
            logger.warning(f"directive_unresolved | name={directive.name} | tag removed")
        return result
