from persona_chat.language import dominant_language, is_greeting, starts_with_any
from persona_chat.repetition import RepetitionDetector
from persona_chat.states import Message, MessageKind

from conftest import msg


def test_repeated_phrases_are_detected_in_first_seen_order():
    window = [
        msg("A", "the pizza place downtown is great"),
        msg("B", "I think the pizza place downtown closed"),
    ]
    phrases = RepetitionDetector().detect_phrases(window)
    assert phrases[:2] == ["the pizza", "the pizza place"]
    assert "pizza place downtown" in phrases
    assert "is great" not in phrases


def test_short_phrases_are_ignored():
    window = [msg("A", "a b c d"), msg("B", "a b c d")]
    # "a b" is only three characters long
    assert "a b" not in RepetitionDetector().detect_phrases(window)
    assert "a b c" in RepetitionDetector().detect_phrases(window)


def test_greetings_and_system_lines_are_skipped():
    window = [
        Message("server", "the pizza place downtown", kind=MessageKind.SYSTEM),
        msg("A", "hello everyone, the pizza place downtown"),
        msg("B", "the pizza place downtown reopened today"),
    ]
    assert RepetitionDetector().detect_phrases(window) == []


def test_only_the_recent_window_counts():
    window = [msg("A", "totally unique sentence here")]
    window += [msg("B", f"filler number {i} about nothing") for i in range(10)]
    window += [msg("C", "totally unique sentence again")]
    assert "totally unique" not in RepetitionDetector().detect_phrases(window)


def test_greeting_count_uses_speakers_own_recent_messages():
    window = [
        msg("A", "hello everyone!"),
        msg("B", "hey A"),
        msg("A", "good morning folks"),
        msg("A", "the match last night was wild"),
        msg("A", "welcome back B"),
    ]
    detector = RepetitionDetector()
    assert detector.greeting_count(window, "A") == 3
    assert detector.is_greeting_spam(window, "A")
    assert detector.greeting_count(window, "B") == 1
    assert not detector.is_greeting_spam(window, "B")
    assert detector.is_greeting_spam(window, "B", follow_up=True)


def test_recent_questions_and_topics():
    window = [
        msg("A", "anyone tried the new ramen food truck?"),
        msg("B", "the weather is awful today"),
        msg("A", "did you watch the game?"),
        msg("A", "not a question"),
    ]
    detector = RepetitionDetector()
    assert detector.recent_questions(window, "A") == [
        "anyone tried the new ramen food truck?",
        "did you watch the game?",
    ]
    assert detector.recent_topics(window) == ["food", "weather", "game"]


def test_greeting_matching_respects_word_boundaries():
    assert is_greeting("hi there")
    assert is_greeting("Moi!")
    assert is_greeting("你好吗")
    assert not is_greeting("this thing is broken")
    assert not is_greeting("")


def test_dominant_language_ties_go_to_first_seen():
    assert dominant_language(["Finnish", "English", "English", "Finnish"]) == "Finnish"
    assert dominant_language(["English", "Finnish", "Finnish"]) == "Finnish"
    assert dominant_language([]) == "English"


def test_starts_with_any_matches_whole_words():
    starters = ("what", "do not")
    assert starts_with_any("What do you think?", starters) == "what"
    assert starts_with_any("do not do that", starters) == "do not"
    assert starts_with_any("Whatever, mate", starters) is None
