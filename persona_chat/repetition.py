from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from loguru import logger

from .config import RepetitionConfig
from .language import is_greeting
from .states import Message


TOPIC_KEYWORDS = (
    "work", "job", "school", "study", "weather", "food", "music", "movie", "game",
    "travel", "vacation", "weekend", "party", "friend", "family", "love", "relationship",
    "health", "exercise", "sport", "book", "news", "politics", "technology", "computer",
    "internet", "phone", "car", "house", "money", "shopping", "hobby", "art", "photo",
)


class RepetitionDetector:
    """Finds phrases and greetings the channel is already repeating."""

    def __init__(self, config: Optional[RepetitionConfig] = None) -> None:
        self.config = config or RepetitionConfig()

    def detect_phrases(self, window: Sequence[Message]) -> List[str]:
        """Word n-grams (2 to 4 words) seen more than once in the recent window.

        System/join/part/quit lines and greetings are skipped. Order follows
        first appearance.
        """
        cfg = self.config
        counts: Dict[str, int] = {}
        for msg in list(window)[-cfg.window:]:
            if not msg.is_conversational or is_greeting(msg.text):
                continue
            words = msg.text.lower().split()
            for i in range(len(words) - 1):
                for size in range(cfg.min_words, min(cfg.max_words, len(words) - i) + 1):
                    phrase = " ".join(words[i:i + size])
                    if len(phrase) >= cfg.min_phrase_chars:
                        counts[phrase] = counts.get(phrase, 0) + 1
        repeated = [phrase for phrase, n in counts.items() if n > 1]
        if repeated:
            logger.debug(f"repetition_phrases | count={len(repeated)} | sample={repeated[:3]}")
        return repeated

    def greeting_count(self, window: Sequence[Message], speaker: str) -> int:
        own = [m for m in window if m.speaker == speaker and m.is_conversational]
        return sum(1 for m in own[-self.config.greeting_lookback:] if is_greeting(m.text))

    def is_greeting_spam(self, window: Sequence[Message], speaker: str, follow_up: bool = False) -> bool:
        cfg = self.config
        threshold = cfg.follow_up_greeting_threshold if follow_up else cfg.greeting_spam_threshold
        return self.greeting_count(window, speaker) >= threshold

    def recent_questions(self, window: Sequence[Message], speaker: str) -> List[str]:
        return [
            m.text.strip()
            for m in list(window)[-self.config.question_window:]
            if m.speaker == speaker and m.is_conversational and m.text.strip().endswith("?")
        ]

    def recent_topics(self, window: Sequence[Message]) -> List[str]:
        topics: List[str] = []
        for m in list(window)[-self.config.topic_window:]:
            if not m.is_conversational:
                continue
            low = m.text.lower()
            for keyword in TOPIC_KEYWORDS:
                if keyword in low and keyword not in topics:
                    topics.append(keyword)
        return topics
