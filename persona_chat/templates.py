from __future__ import annotations

import random
import re
from typing import Dict, Optional, Tuple

from .config import DEFAULT_LANGUAGE
from .states import GenerationContext, Persona


# Canned lines used while providers are unavailable. Keyed by context value.
FALLBACK_POOLS: Dict[str, Tuple[str, ...]] = {
    GenerationContext.ACTIVITY.value: (
        "hmm, interesting point",
        "that's actually pretty cool",
        "nice! I like that",
        "I see what you mean",
        "makes sense to me",
        "good point there",
        "yeah, I totally agree",
        "sounds good to me",
        "that's definitely true",
        "oh yeah, for sure",
        "fair enough",
        "can't argue with that",
        "never thought of it that way",
        "yeah that tracks",
    ),
    GenerationContext.REACTION.value: (
        "haha, nice one!",
        "lol that's great",
        "that's actually funny",
        "exactly! couldn't have said it better",
        "I know right? same here",
        "totally agree with that",
        "for real though",
        "this is so accurate lol",
        "haha no way",
        "couldn't agree more",
        "you're not wrong there",
        "felt that one",
    ),
    GenerationContext.OPERATOR.value: (
        "give me a moment, thinking about that",
        "good question, let me get back to you",
        "hmm, let me mull that over",
    ),
    GenerationContext.PRIVATE_MESSAGE.value: (
        "hey! give me a sec, I'll reply properly soon",
        "saw your message, back in a bit",
        "hmm, let me think about that one",
    ),
}

FALLBACK_EMOJIS: Tuple[str, ...] = ("😄", "😊", "👍", "✨", "🔥", "💯", "😂", "🎉", "👌", "💪")

VERBOSE_TAILS: Tuple[str, ...] = (
    "you know what I mean?",
    "if you ask me",
    "just saying",
    "that's what I think anyway",
    "in my opinion at least",
)

TERSE_VERSIONS: Dict[str, str] = {
    "hmm, interesting point": "interesting",
    "that's actually pretty cool": "cool",
    "nice! I like that": "nice",
    "I see what you mean": "I see",
    "makes sense to me": "makes sense",
    "good point there": "good point",
    "yeah, I totally agree": "agree",
    "sounds good to me": "sounds good",
    "that's definitely true": "true",
    "haha, nice one!": "haha",
    "lol that's great": "lol",
    "that's actually funny": "funny",
    "exactly! couldn't have said it better": "exactly",
    "I know right? same here": "ikr",
    "totally agree with that": "totally",
    "for real though": "fr",
}

# language -> apology kind -> templates
APOLOGY_TEMPLATES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "English": {
        "ai_error": (
            "Sorry, my thoughts got tangled up for a moment. Let's try again later.",
            "Hmm, my mind wandered off. Give me a second to gather myself.",
            "Oops, I lost my train of thought. Can we continue later?",
            "My circuits are taking a coffee break. One moment please.",
            "Sorry, I was lost in thought. Where were we?",
        ),
        "send_failure": (
            "It seems there was an error sending that. I'll try again.",
            "Oops, that didn't go through. Let me resend it.",
            "My message got lost in digital space. Resending...",
        ),
    },
    "Finnish": {
        "ai_error": (
            "Anteeksi, ajatukseni sotkeutuivat hetkeksi. Yritetään myöhemmin uudelleen.",
            "Hmm, mieleni harhaili pois. Anna minun kerätä itseäni sekunniksi.",
            "Hups, menetin langan. Voimmeko jatkaa myöhemmin?",
            "Anteeksi, olin ajatuksissani. Missä me olimme?",
        ),
        "send_failure": (
            "Näyttää siltä että lähettämisessä oli virhe. Yritän uudelleen.",
            "Hups, se ei mennyt läpi. Lähetän uudelleen.",
        ),
    },
    "Spanish": {
        "ai_error": (
            "Disculpa, mis pensamientos se enredaron por un momento. Intentemos de nuevo más tarde.",
            "Ups, perdí el hilo. ¿Podemos continuar después?",
            "Perdón, estaba perdido en mis pensamientos. ¿Dónde estábamos?",
        ),
        "send_failure": (
            "Parece que hubo un error al enviar eso. Lo intentaré de nuevo.",
            "Ups, eso no pasó. Déjame reenviarlo.",
        ),
    },
    "French": {
        "ai_error": (
            "Désolé, mes pensées se sont emmêlées un instant. Essayons plus tard.",
            "Oups, j'ai perdu le fil. Pouvons-nous continuer plus tard ?",
            "Désolé, j'étais perdu dans mes pensées. Où en étions-nous ?",
        ),
        "send_failure": (
            "Il semble qu'il y ait eu une erreur d'envoi. Je vais réessayer.",
            "Oups, ça n'est pas passé. Laisse-moi le renvoyer.",
        ),
    },
    "German": {
        "ai_error": (
            "Entschuldigung, meine Gedanken haben sich für einen Moment verheddert. Lass uns später nochmal versuchen.",
            "Ups, ich habe den Faden verloren. Können wir später weitermachen?",
            "Entschuldigung, ich habe geträumt. Worüber haben wir gesprochen?",
        ),
        "send_failure": (
            "Es scheint, als hätte es einen Fehler beim Senden gegeben. Ich versuche es nochmal.",
            "Ups, das ist nicht durchgegangen. Lass mich es nochmal senden.",
        ),
    },
}

APOLOGY_EMOJIS: Tuple[str, ...] = ("😅", "🤔", "💭", "⚙️", "🔄", "📡")
PLAYFUL_ADDITIONS: Tuple[str, ...] = ("😅", "🤭", "🙈", "oopsie!", "whoops!")

_SORRY_RE = re.compile(r"sorry|anteeksi|disculpa|désolé|entschuldigung", re.IGNORECASE)


class FallbackTemplates:
    """Persona-flavored canned text for degraded mode and failed cycles."""

    def __init__(self, rng: Optional[random.Random] = None, default_language: str = DEFAULT_LANGUAGE) -> None:
        self._rng = rng or random.Random()
        self.default_language = default_language

    def fallback_text(self, persona: Optional[Persona], context: GenerationContext = GenerationContext.ACTIVITY) -> str:
        pool = (persona.custom_fallbacks(context) if persona else ()) or FALLBACK_POOLS[context.value]
        text = self._rng.choice(pool)
        if persona is None:
            return text
        verbosity = persona.style.verbosity
        if verbosity in ("extremely_verbose", "novel_length"):
            text = f"{text}, {self._rng.choice(VERBOSE_TAILS)}"
        elif verbosity == "terse":
            text = TERSE_VERSIONS.get(text) or text.split(" ")[0]
        return self._with_emoji(text, persona.style.emoji_usage, FALLBACK_EMOJIS)

    def apology(self, persona: Optional[Persona], kind: str = "ai_error") -> str:
        language = persona.primary_language if persona else self.default_language
        templates = (
            APOLOGY_TEMPLATES.get(language)
            or APOLOGY_TEMPLATES.get(self.default_language)
            or APOLOGY_TEMPLATES[DEFAULT_LANGUAGE]
        )
        pool = templates.get(kind) or templates["ai_error"]
        message = self._rng.choice(pool)
        if persona is None:
            return message

        if persona.has_trait(("shy", "timid")):
            message = _SORRY_RE.sub("um, sorry", message)
        elif persona.has_trait(("confident", "bold")):
            message = _SORRY_RE.sub("no worries", message)
        elif persona.has_trait(("playful", "fun")):
            message = f"{message} {self._rng.choice(PLAYFUL_ADDITIONS)}"
        return self._with_emoji(message, persona.style.emoji_usage, APOLOGY_EMOJIS)

    def _with_emoji(self, text: str, usage: str, emojis: Tuple[str, ...]) -> str:
        if usage in ("frequent", "excessive"):
            emoji = self._rng.choice(emojis)
            return f"{text} {emoji}" if self._rng.random() < 0.5 else f"{emoji} {text}"
        if usage == "moderate" and self._rng.random() < 0.3:
            return f"{text} {self._rng.choice(emojis)}"
        return text
