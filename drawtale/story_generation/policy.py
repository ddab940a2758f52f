"""
Age, mood, vocabulary and art-style policy for DrawTale stories.

Everything here is pure lookup logic keyed on the child's age or the upstream
drawing analysis; no completion calls are made.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from .request import AnalysisInsights

StoryMood = Literal["happy", "adventure", "calm", "magical", "therapeutic"]

MOODS: tuple[str, ...] = ("happy", "adventure", "calm", "magical", "therapeutic")

WORD_TOLERANCE = 15
DIALOGUE_MIN_AGE = 4

_WORD_PATTERN = re.compile(r"\S+")
_SENTENCE_PATTERN = re.compile(r"[^.!?…]+[.!?…]+|[^.!?…]+$")


@dataclass(frozen=True)
class AgeParameters:
    """
    Story shape for one age bucket.

    Attributes
    ----------
    page_count:
        Number of pages, and therefore story beats, in the outline.
    sentences_per_page:
        Target sentence count the scene prompt asks for.
    words_per_page:
        Target word count; accepted range is ``word_budget``.
    complexity:
        Prose complexity hint for the prompt.
    vocabulary:
        Vocabulary domains suited to the bucket.
    themes:
        Default themes used when the request supplies none.
    """

    page_count: int
    sentences_per_page: int
    words_per_page: int
    complexity: str
    vocabulary: str
    themes: tuple[str, ...]

    @property
    def word_budget(self) -> tuple[int, int]:
        return (max(1, self.words_per_page - WORD_TOLERANCE), self.words_per_page + WORD_TOLERANCE)

    def within_budget(self, text: str) -> bool:
        low, high = self.word_budget
        return low <= count_words(text) <= high


@dataclass(frozen=True)
class VocabularyLevel:
    age_group: int
    max_word_length: int
    complexity: str
    allowed_concepts: tuple[str, ...]
    forbidden_concepts: tuple[str, ...]


@dataclass(frozen=True)
class StoryStyle:
    art_style: str
    color_palette: tuple[str, ...]
    mood: str


def get_age_parameters(age: int) -> AgeParameters:
    if age <= 3:
        return AgeParameters(
            page_count=4,
            sentences_per_page=3,
            words_per_page=40,
            complexity="very simple words, repeated structures, rhythm",
            vocabulary="everyday objects, basic feelings (happy, sad)",
            themes=("love", "friendship", "discovery"),
        )
    if age <= 6:
        return AgeParameters(
            page_count=5,
            sentences_per_page=4,
            words_per_page=60,
            complexity="simple words, short sentences, a few adjectives",
            vocabulary="animals, nature, friendship, basic feelings",
            themes=("sharing", "helping each other", "courage", "curiosity"),
        )
    if age <= 9:
        return AgeParameters(
            page_count=6,
            sentences_per_page=5,
            words_per_page=90,
            complexity="rich words, dialogue, detailed descriptions",
            vocabulary="adventure, a range of feelings, social situations",
            themes=("problem solving", "empathy", "patience", "resilience"),
        )
    return AgeParameters(
        page_count=7,
        sentences_per_page=6,
        words_per_page=120,
        complexity="complex sentences, rich narration, metaphors",
        vocabulary="abstract ideas, moral lessons, character growth",
        themes=("responsibility", "fairness", "identity", "growing up"),
    )


_MOOD_KEYWORDS: tuple[tuple[StoryMood, tuple[str, ...]], ...] = (
    ("happy", ("neşe", "mutlu", "joy", "happy")),
    ("adventure", ("merak", "macera", "curious", "adventure")),
    ("calm", ("huzur", "sakin", "calm", "peace")),
)


def determine_story_mood(insights: "AnalysisInsights") -> StoryMood:
    """
    Pick the story mood from the drawing analysis.

    Any trauma signal or risk flag forces the therapeutic mood; otherwise the
    first keyword family found in the insight summaries wins.
    """
    trauma = insights.trauma
    if (trauma is not None and trauma.has_traumatic_content) or insights.risk_flags:
        return "therapeutic"

    text = " ".join(insight.summary for insight in insights.insights).lower()
    for mood, keywords in _MOOD_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return mood
    return "magical"


# key -> (max word length, complexity, allowed concepts)
_VOCABULARY_LEVELS: dict[int, tuple[int, str, tuple[str, ...]]] = {
    3: (6, "very_simple", ("family", "animals", "colors", "food", "play")),
    5: (8, "simple", ("friendship", "sharing", "nature", "adventure")),
    8: (12, "moderate", ("problem-solving", "emotions", "responsibility")),
    12: (15, "rich", ("complex emotions", "social issues", "growth")),
}

_FORBIDDEN_CONCEPTS: dict[str, dict[int, tuple[str, ...]]] = {
    "en": {
        3: ("death", "fear", "violence", "disease"),
        5: ("death", "violence", "war"),
        8: ("violence", "war"),
        12: (),
    },
    "tr": {
        3: ("ölüm", "korku", "şiddet", "hastalık"),
        5: ("ölüm", "şiddet", "savaş"),
        8: ("şiddet", "savaş"),
        12: (),
    },
}


def get_vocabulary_level(age: int, language: str = "en") -> VocabularyLevel:
    """
    Return the vocabulary level for the closest bucket at or below ``age``.
    """
    eligible = [key for key in sorted(_VOCABULARY_LEVELS) if key <= age]
    key = eligible[-1] if eligible else 3
    max_word_length, complexity, allowed = _VOCABULARY_LEVELS[key]
    forbidden = _FORBIDDEN_CONCEPTS.get(language, _FORBIDDEN_CONCEPTS["en"])

    return VocabularyLevel(
        age_group=age,
        max_word_length=max_word_length,
        complexity=complexity,
        allowed_concepts=allowed,
        forbidden_concepts=forbidden[key],
    )


def get_story_style(age: int) -> StoryStyle:
    if age <= 3:
        return StoryStyle(
            art_style="very simple shapes, bold colors, minimal detail",
            color_palette=("bright red", "sunny yellow", "sky blue", "grass green"),
            mood="cheerful, simple, comforting",
        )
    if age <= 6:
        return StoryStyle(
            art_style="soft watercolor, rounded shapes, gentle lines",
            color_palette=("warm pink", "soft blue", "creamy yellow", "mint green"),
            mood="warm, friendly, magical",
        )
    if age <= 9:
        return StoryStyle(
            art_style="watercolor with details, expressive characters",
            color_palette=("rich teal", "warm orange", "deep purple", "forest green"),
            mood="adventurous, engaging, dynamic",
        )
    return StoryStyle(
        art_style="detailed watercolor, sophisticated composition",
        color_palette=("burgundy", "navy blue", "gold", "emerald"),
        mood="mature, thought-provoking, inspiring",
    )


def count_words(text: str) -> int:
    return len(_WORD_PATTERN.findall(text or ""))


def count_sentences(text: str) -> int:
    return sum(1 for match in _SENTENCE_PATTERN.findall(text or "") if match.strip())
