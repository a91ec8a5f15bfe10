from __future__ import annotations

import re
from collections import Counter
from functools import lru_cache
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .config import DEFAULT_LANGUAGE


# language -> greeting phrases matched anywhere in a message
GREETING_PHRASES: Dict[str, Tuple[str, ...]] = {
    "English": (
        "welcome", "hello", "hi", "hey", "greetings", "good morning", "good afternoon",
        "good evening", "howdy", "sup", "what's up", "how are you", "how's it going",
        "nice to meet", "good to see", "glad to see", "great to see",
    ),
    "Spanish": (
        "hola", "buenos días", "buenas tardes", "buenas noches", "saludos", "bienvenido",
        "bienvenida", "bienvenidos", "qué tal", "cómo estás", "cómo están",
    ),
    "French": (
        "bonjour", "bonsoir", "salut", "bonne journée", "bonne soirée", "bienvenue",
        "comment allez-vous", "comment ça va",
    ),
    "German": (
        "hallo", "guten tag", "guten morgen", "guten abend", "gute nacht", "willkommen",
        "wie geht es", "wie geht's",
    ),
    "Italian": ("ciao", "buongiorno", "buonasera", "buonanotte", "salve", "benvenuto", "come stai"),
    "Portuguese": ("olá", "bom dia", "boa tarde", "boa noite", "bem-vindo", "bem-vinda", "como está"),
    "Dutch": ("goedemorgen", "goedemiddag", "goedenavond", "welkom", "hoe gaat het"),
    "Swedish": ("hej", "god morgon", "god kväll", "välkommen", "hur mår du", "hur är det"),
    "Norwegian": ("hei", "god morgen", "god kveld", "velkommen", "hvordan går det"),
    "Danish": ("god aften", "velkommen", "hvordan går det"),
    "Finnish": (
        "hei", "terve", "moi", "hyvää huomenta", "hyvää päivää", "hyvää iltaa", "hyvää yötä",
        "tervetuloa", "hei kaikki", "miten menee", "mitä kuuluu",
    ),
    "Russian": ("привет", "здравствуйте", "доброе утро", "добрый день", "добрый вечер", "добро пожаловать", "как дела"),
    "Japanese": ("こんにちは", "こんばんは", "おはよう", "ようこそ"),
    "Chinese": ("你好", "您好", "大家好", "早上好", "晚上好", "欢迎"),
    "Korean": ("안녕하세요", "환영합니다"),
    "Arabic": ("مرحبا", "السلام عليكم", "صباح الخير", "مساء الخير", "أهلا وسهلا"),
}

# Very short messages containing one of these are treated as greetings
SHORT_GREETING_TOKENS: Tuple[str, ...] = (
    "hi", "hello", "hey", "welcome", "hola", "bonjour", "hallo", "ciao", "olá",
    "こんにちは", "你好", "привет", "مرحبا", "안녕하세요", "hei", "terve", "moi",
)
SHORT_MESSAGE_CHARS = 20

_LATIN_RE = re.compile(r"[a-zà-ÿ]", re.IGNORECASE)


def _phrase_pattern(phrase: str) -> str:
    # Latin-script phrases need word boundaries ("hi" must not match "this");
    # CJK and similar scripts have no spaces, so they match as substrings.
    escaped = re.escape(phrase)
    if _LATIN_RE.search(phrase):
        return rf"(?<!\w){escaped}(?!\w)"
    return escaped


@lru_cache(maxsize=1)
def _greeting_regex() -> "re.Pattern[str]":
    phrases = sorted({p for group in GREETING_PHRASES.values() for p in group}, key=len, reverse=True)
    return re.compile("|".join(_phrase_pattern(p) for p in phrases), re.IGNORECASE)


@lru_cache(maxsize=1)
def _short_greeting_regex() -> "re.Pattern[str]":
    return re.compile("|".join(_phrase_pattern(t) for t in SHORT_GREETING_TOKENS), re.IGNORECASE)


def is_greeting(text: str) -> bool:
    """True when *text* reads like a hello/welcome in any known language."""
    low = (text or "").strip().lower()
    if not low:
        return False
    if _greeting_regex().search(low):
        return True
    return len(low) < SHORT_MESSAGE_CHARS and bool(_short_greeting_regex().search(low))


def dominant_language(languages: Iterable[str], default: str = DEFAULT_LANGUAGE) -> str:
    """Most common language; ties go to the one seen first."""
    counts = Counter()
    order = []
    for lang in languages:
        if lang not in counts:
            order.append(lang)
        counts[lang] += 1
    if not order:
        return default
    best = max(counts.values())
    return next(lang for lang in order if counts[lang] == best)


def starts_with_any(text: str, starters: Sequence[str], max_words: int = 3) -> Optional[str]:
    """Return the starter the first ``max_words`` words of *text* begin with, if any."""
    head = " ".join((text or "").lower().split()[:max_words])
    for starter in starters:
        if re.match(rf"{re.escape(starter.lower())}(?!\w)", head):
            return starter
    return None
