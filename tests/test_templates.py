import random

from persona_chat.states import GenerationContext, Persona, WritingStyle
from persona_chat.templates import APOLOGY_TEMPLATES, FALLBACK_EMOJIS, FALLBACK_POOLS, TERSE_VERSIONS, FallbackTemplates


def test_fallback_text_comes_from_the_context_pool(nova):
    templates = FallbackTemplates(rng=random.Random(0))
    for context in GenerationContext:
        assert templates.fallback_text(nova, context) in FALLBACK_POOLS[context.value]


def test_custom_fallbacks_override_builtin_pool():
    persona = Persona.from_dict({"nickname": "Kai", "fallback_messages": {"reaction": ["kai approves"]}})
    templates = FallbackTemplates(rng=random.Random(0))
    assert templates.fallback_text(persona, GenerationContext.REACTION) == "kai approves"
    assert templates.fallback_text(persona, GenerationContext.ACTIVITY) in FALLBACK_POOLS["activity"]


def test_terse_personas_get_short_lines(terse_persona):
    templates = FallbackTemplates(rng=random.Random(3))
    allowed = set(TERSE_VERSIONS.values()) | {line.split(" ")[0] for line in FALLBACK_POOLS["activity"]}
    for _ in range(20):
        assert templates.fallback_text(terse_persona, GenerationContext.ACTIVITY) in allowed


def test_frequent_emoji_users_get_an_emoji():
    persona = Persona("Zed", style=WritingStyle(emoji_usage="excessive"))
    text = FallbackTemplates(rng=random.Random(1)).fallback_text(persona)
    assert text not in FALLBACK_POOLS["activity"]


def test_apology_is_localized(finnish_persona):
    templates = FallbackTemplates(rng=random.Random(2))
    assert templates.apology(finnish_persona) in APOLOGY_TEMPLATES["Finnish"]["ai_error"]
    assert templates.apology(finnish_persona, "send_failure") in APOLOGY_TEMPLATES["Finnish"]["send_failure"]


def test_unknown_language_falls_back_to_english():
    persona = Persona("Ola", languages=("Klingon",))
    assert FallbackTemplates(rng=random.Random(2)).apology(persona) in APOLOGY_TEMPLATES["English"]["ai_error"]


def test_personality_tweaks():
    shy = Persona("Mia", personality="shy bookworm")
    bold = Persona("Rex", personality="bold and loud")
    playful = Persona("Pip", personality="playful prankster")
    shy_lines = [FallbackTemplates(rng=random.Random(s)).apology(shy) for s in range(40)]
    assert all("Sorry" not in line for line in shy_lines)
    assert any("um, sorry" in line for line in shy_lines)

    bold_lines = [FallbackTemplates(rng=random.Random(s)).apology(bold) for s in range(40)]
    assert any("no worries" in line for line in bold_lines)

    playful_line = FallbackTemplates(rng=random.Random(0)).apology(playful)
    assert playful_line not in APOLOGY_TEMPLATES["English"]["ai_error"]


def test_terse_lookup_happens_before_emoji():
    persona = Persona("Tiv", style=WritingStyle(verbosity="terse", emoji_usage="frequent"))
    allowed = set(TERSE_VERSIONS.values()) | {line.split(" ")[0] for line in FALLBACK_POOLS["activity"]}
    for seed in range(40):
        text = FallbackTemplates(rng=random.Random(seed)).fallback_text(persona)
        emoji = next(e for e in FALLBACK_EMOJIS if text.startswith(e + " ") or text.endswith(" " + e))
        core = text.replace(emoji, "", 1).strip()
        assert core in allowed


def test_traits_match_whole_words_only():
    assert not Persona("Ed", personality="dysfunctional knight").has_trait(("fun", "night"))
    assert Persona("Jo", personality="fun loving night owl").has_trait(("night",))
    assert Persona("Lu", personality="Playful, chatty").has_trait(("playful",))
