"""
Per-request consistency engine keeping a story's character, voice and emotional
arc coherent across independently generated pages.

One :class:`StoryConsistencyEngine` belongs to exactly one in-flight request.
It hands out per-page guidance while the story is assembled and scores the
finished pages afterwards.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Literal, Mapping, Sequence

from drawtale.common.errors import ConsistencyThresholdNotMet
from drawtale.illustration.identity import (
    CharacterIdentity,
    derive_character_identity,
    extract_clothing,
    page_seed,
)
from drawtale.illustration.prompting import compose_visual_prompt
from drawtale.story_generation.models import CharacterProfile
from drawtale.story_generation.policy import (
    StoryStyle,
    VocabularyLevel,
    get_story_style,
    get_vocabulary_level,
)

logger = logging.getLogger(__name__)

NarrativeKind = Literal["character", "location", "object"]
IssueType = Literal["visual", "text", "emotional", "narrative"]
Severity = Literal["low", "medium", "high"]

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "happy": frozenset({"excited", "curious", "proud", "worried"}),
    "excited": frozenset({"happy", "proud", "curious"}),
    "curious": frozenset({"excited", "happy", "worried", "surprised"}),
    "worried": frozenset({"relieved", "scared", "hopeful", "happy"}),
    "scared": frozenset({"brave", "relieved", "worried"}),
    "sad": frozenset({"hopeful", "happy", "comforted"}),
    "proud": frozenset({"happy", "excited"}),
    "surprised": frozenset({"excited", "happy", "curious", "worried"}),
}


def is_valid_transition(previous: str, current: str) -> bool:
    if previous == current:
        return True
    return current in ALLOWED_TRANSITIONS.get(previous, frozenset())


@dataclass(frozen=True)
class ConsistencyPolicy:
    """
    Scoring constants for :meth:`StoryConsistencyEngine.validate_consistency`.

    Attributes
    ----------
    visual_penalty:
        Deducted from the visual score per page whose prompt lacks the anchor prefix.
    missing_name_penalty:
        Deducted from the text score per page that never names the character.
    forbidden_term_penalty:
        Deducted from the text score per page containing an age-inappropriate term.
    emotion_jump_penalty:
        Deducted from the emotional score per unlisted emotion transition.
    pass_threshold:
        Overall score at or above which a story counts as consistent.
    anchor_prefix_length:
        Leading characters of the anchor prompt that every page prompt must contain.
    """

    visual_penalty: int = 20
    missing_name_penalty: int = 10
    forbidden_term_penalty: int = 15
    emotion_jump_penalty: int = 5
    pass_threshold: int = 70
    anchor_prefix_length: int = 30

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ConsistencyPolicy":
        known = {item.name for item in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown consistency policy keys: {', '.join(sorted(unknown))}")
        return cls(**{key: int(value) for key, value in data.items()})


@dataclass(frozen=True)
class TextStyle:
    tone: str
    sentence_length: str
    favorite_words: tuple[str, ...]
    avoid_words: tuple[str, ...]
    punctuation_style: str
    speaking_pattern: str


@dataclass(frozen=True)
class EmotionalProfile:
    base_emotion: str
    expression_intensity: str = "moderate"


@dataclass(frozen=True)
class CharacterConsistencyProfile:
    """
    Everything the engine knows about the character, visual and textual.
    """

    name: str
    species: str
    gender: str | None
    age: int
    identity: CharacterIdentity
    physical_description: str
    color_palette: tuple[str, ...]
    distinctive_features: tuple[str, ...]
    clothing_style: str
    personality: tuple[str, ...]
    speech_style: TextStyle
    emotional_profile: EmotionalProfile
    vocabulary_level: VocabularyLevel
    typical_reactions: Mapping[str, str]
    catch_phrases: tuple[str, ...]
    story_style: StoryStyle


@dataclass(frozen=True)
class NarrativeSnapshot:
    introduced_characters: tuple[str, ...] = ()
    visited_locations: tuple[str, ...] = ()
    mentioned_objects: tuple[str, ...] = ()


@dataclass
class NarrativeElements:
    introduced_characters: list[str] = field(default_factory=list)
    visited_locations: list[str] = field(default_factory=list)
    mentioned_objects: list[str] = field(default_factory=list)

    def add(self, kind: NarrativeKind, value: str) -> bool:
        target = {
            "character": self.introduced_characters,
            "location": self.visited_locations,
            "object": self.mentioned_objects,
        }.get(kind)
        if target is None:
            raise ValueError(f"Unknown narrative element kind: {kind!r}")
        if value in target:
            return False
        target.append(value)
        return True

    def snapshot(self) -> NarrativeSnapshot:
        return NarrativeSnapshot(
            introduced_characters=tuple(self.introduced_characters),
            visited_locations=tuple(self.visited_locations),
            mentioned_objects=tuple(self.mentioned_objects),
        )


@dataclass
class ConsistencyState:
    """Mutable state for one story; owned by a single engine."""

    current_emotion: str
    emotion_history: list[tuple[int, str]] = field(default_factory=list)
    used_phrases: list[str] = field(default_factory=list)
    narrative: NarrativeElements = field(default_factory=NarrativeElements)
    page_seeds: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PagePrompt:
    prompt: str
    seed: int


@dataclass(frozen=True)
class TextGuidelines:
    speech_style: TextStyle
    vocabulary_level: VocabularyLevel
    current_emotion: str
    previous_emotion: str
    is_valid_transition: bool
    suggested_phrase: str | None
    reaction_pattern: str
    avoid_repetition: tuple[str, ...]
    narrative_context: NarrativeSnapshot


@dataclass(frozen=True)
class ConsistencyIssue:
    type: IssueType
    severity: Severity
    description: str
    page: int | None = None
    fix: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "page": self.page,
            "fix": self.fix,
        }


@dataclass(frozen=True)
class ConsistencyCheckResult:
    is_consistent: bool
    score: int
    visual_score: int
    text_score: int
    emotional_score: int
    issues: tuple[ConsistencyIssue, ...] = ()
    suggestions: tuple[str, ...] = ()

    def raise_if_inconsistent(self) -> None:
        if not self.is_consistent:
            raise ConsistencyThresholdNotMet(self)

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_consistent": self.is_consistent,
            "score": self.score,
            "visual_score": self.visual_score,
            "text_score": self.text_score,
            "emotional_score": self.emotional_score,
            "issues": [issue.as_dict() for issue in self.issues],
            "suggestions": list(self.suggestions),
        }


_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "visual": (
        "Start every prompt with the character's anchor tags",
        "Keep the same base seed to hold the character steady",
    ),
    "text": (
        "Use the character's name at least once on every page",
        "Choose age-appropriate vocabulary",
    ),
    "emotional": (
        "Make emotion changes between pages gentler",
        "Avoid abrupt emotional jumps",
    ),
}

_PHRASE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "excited": ("Vay", "Wow", "Harika", "Amazing"),
    "happy": ("Teşekkür", "Thank"),
    "curious": ("Belki", "Maybe"),
    "brave": ("Hadi", "Let's"),
}


def _any_trait(personality: Sequence[str], pattern: str) -> bool:
    regex = re.compile(pattern, re.IGNORECASE)
    return any(regex.search(trait) for trait in personality)


class StoryConsistencyEngine:
    """
    Session-scoped guidance and scoring for one story.
    """

    def __init__(self, policy: ConsistencyPolicy | None = None) -> None:
        self._policy = policy or ConsistencyPolicy()
        self._profile: CharacterConsistencyProfile | None = None
        self._state: ConsistencyState | None = None

    @property
    def policy(self) -> ConsistencyPolicy:
        return self._policy

    @property
    def profile(self) -> CharacterConsistencyProfile:
        return self._session()[0]

    @property
    def state(self) -> ConsistencyState:
        return self._session()[1]

    def initialize(
        self,
        character: CharacterProfile,
        child_age: int,
        language: str = "en",
        *,
        identity: CharacterIdentity | None = None,
    ) -> CharacterConsistencyProfile:
        """
        Build the character's consistency profile and reset session state.
        """
        identity = identity or derive_character_identity(character)
        emotional_profile = self._define_emotional_profile(character)

        profile = CharacterConsistencyProfile(
            name=character.name,
            species=character.species,
            gender=character.gender,
            age=character.age,
            identity=identity,
            physical_description=character.appearance,
            color_palette=identity.color_palette,
            distinctive_features=identity.unique_features,
            clothing_style=extract_clothing(character.appearance),
            personality=character.personality,
            speech_style=self._define_text_style(character, child_age, language),
            emotional_profile=emotional_profile,
            vocabulary_level=get_vocabulary_level(child_age, language),
            typical_reactions=self._typical_reactions(character.name, language),
            catch_phrases=self._catch_phrases(character.name, language),
            story_style=get_story_style(child_age),
        )

        state = ConsistencyState(current_emotion=emotional_profile.base_emotion)
        state.narrative.add("character", character.name)

        self._profile = profile
        self._state = state

        logger.info(
            "[ConsistencyEngine] Initialized for %s: identity=%s tone=%s base_emotion=%s",
            profile.name,
            identity.hash[:8],
            profile.speech_style.tone,
            emotional_profile.base_emotion,
        )
        return profile

    def get_visual_prompt(
        self,
        page_number: int,
        total_pages: int,
        scene_elements: Sequence[str],
        emotion: str,
    ) -> PagePrompt:
        profile = self.profile
        state = self.state

        state.emotion_history.append((page_number, emotion))
        state.current_emotion = emotion

        seed = page_seed(profile.identity, page_number)
        state.page_seeds[page_number] = seed

        prompt = compose_visual_prompt(
            profile.identity,
            scene_elements,
            emotion,
            page_number,
            total_pages,
            profile.story_style,
        )
        return PagePrompt(prompt=prompt, seed=seed)

    def get_text_guidelines(self, page_number: int, emotion: str, context: str = "") -> TextGuidelines:
        profile = self.profile
        state = self.state

        previous = state.current_emotion
        valid = is_valid_transition(previous, emotion)
        if not valid:
            logger.info(
                "[ConsistencyEngine] Page %d: unlisted emotion transition %s -> %s",
                page_number,
                previous,
                emotion,
            )

        reactions = profile.typical_reactions
        return TextGuidelines(
            speech_style=profile.speech_style,
            vocabulary_level=profile.vocabulary_level,
            current_emotion=emotion,
            previous_emotion=previous,
            is_valid_transition=valid,
            suggested_phrase=self._select_catch_phrase(emotion),
            reaction_pattern=reactions.get(emotion, reactions["default"]),
            avoid_repetition=tuple(state.used_phrases),
            narrative_context=state.narrative.snapshot(),
        )

    def record_used_phrase(self, phrase: str) -> None:
        state = self.state
        if phrase not in state.used_phrases:
            state.used_phrases.append(phrase)

    def record_narrative_element(self, kind: NarrativeKind, value: str) -> None:
        self.state.narrative.add(kind, value)

    def validate_consistency(self, pages: Sequence[Any]) -> ConsistencyCheckResult:
        """
        Score finished pages. Pages need ``text``, ``visual_prompt`` and ``emotion``.
        """
        profile = self.profile
        policy = self._policy

        anchor_prefix = profile.identity.anchor_prompt[: policy.anchor_prefix_length]
        forbidden = profile.vocabulary_level.forbidden_concepts

        issues: list[ConsistencyIssue] = []
        visual_score = text_score = emotional_score = 100

        for index, page in enumerate(pages):
            number = getattr(page, "page_number", index + 1)
            text = page.text or ""
            prompt = page.visual_prompt or ""

            if anchor_prefix not in prompt:
                issues.append(
                    ConsistencyIssue(
                        type="visual",
                        severity="high",
                        description=f"Page {number}: character anchor tags missing",
                        page=number,
                        fix="Prepend the character's anchor tags to the prompt",
                    )
                )
                visual_score -= policy.visual_penalty

            if profile.name not in text:
                issues.append(
                    ConsistencyIssue(
                        type="text",
                        severity="medium",
                        description=f"Page {number}: character name not mentioned",
                        page=number,
                    )
                )
                text_score -= policy.missing_name_penalty

            if index > 0:
                previous = pages[index - 1].emotion
                if not is_valid_transition(previous, page.emotion):
                    issues.append(
                        ConsistencyIssue(
                            type="emotional",
                            severity="low",
                            description=(
                                f"Page {number}: abrupt emotion change "
                                f"({previous} -> {page.emotion})"
                            ),
                            page=number,
                        )
                    )
                    emotional_score -= policy.emotion_jump_penalty

            lowered = text.lower()
            found = [term for term in forbidden if term.lower() in lowered]
            if found:
                issues.append(
                    ConsistencyIssue(
                        type="text",
                        severity="medium",
                        description=f"Page {number}: age-inappropriate words: {', '.join(found)}",
                        page=number,
                    )
                )
                text_score -= policy.forbidden_term_penalty

        visual_score, text_score, emotional_score = (
            max(visual_score, 0),
            max(text_score, 0),
            max(emotional_score, 0),
        )
        score = round((visual_score + text_score + emotional_score) / 3)

        result = ConsistencyCheckResult(
            is_consistent=score >= policy.pass_threshold,
            score=score,
            visual_score=visual_score,
            text_score=text_score,
            emotional_score=emotional_score,
            issues=tuple(issues),
            suggestions=self._suggestions(issues),
        )
        logger.info(
            "[ConsistencyEngine] Score %d (visual=%d text=%d emotional=%d, %d issue(s))",
            score,
            visual_score,
            text_score,
            emotional_score,
            len(issues),
        )
        return result

    def _session(self) -> tuple[CharacterConsistencyProfile, ConsistencyState]:
        if self._profile is None or self._state is None:
            raise RuntimeError("StoryConsistencyEngine used before initialize().")
        return self._profile, self._state

    @staticmethod
    def _suggestions(issues: Sequence[ConsistencyIssue]) -> tuple[str, ...]:
        categories = dict.fromkeys(issue.type for issue in issues)
        suggestions: list[str] = []
        for category in categories:
            suggestions.extend(_SUGGESTIONS.get(category, ()))
        return tuple(suggestions)

    def _select_catch_phrase(self, emotion: str) -> str | None:
        used = set(self.state.used_phrases)
        unused = [phrase for phrase in self.profile.catch_phrases if phrase not in used]
        if not unused:
            return None

        keywords = _PHRASE_KEYWORDS.get(emotion, ())
        for phrase in unused:
            if any(keyword in phrase for keyword in keywords):
                return phrase
        return unused[0]

    @staticmethod
    def _define_text_style(character: CharacterProfile, age: int, language: str) -> TextStyle:
        personality = character.personality
        if _any_trait(personality, r"cesur|brave|strong"):
            tone = "energetic"
        elif _any_trait(personality, r"sakin|calm|quiet"):
            tone = "gentle"
        elif _any_trait(personality, r"neşeli|happy|playful"):
            tone = "playful"
        else:
            tone = "gentle"

        if age <= 3:
            sentence_length = "very_short"
        elif age <= 5:
            sentence_length = "short"
        elif age <= 8:
            sentence_length = "medium"
        else:
            sentence_length = "long"

        if language == "tr":
            favorite_words = ("belki", "sanırım", "acaba", "vay", "harika")
            avoid_words = ("ölüm", "korkunç", "berbat", "aptal", "salak")
        else:
            favorite_words = ("maybe", "I think", "wow", "amazing", "look")
            avoid_words = ("death", "horrible", "stupid", "hate", "kill")

        return TextStyle(
            tone=tone,
            sentence_length=sentence_length,
            favorite_words=favorite_words,
            avoid_words=avoid_words,
            punctuation_style="minimal" if age <= 5 else "normal",
            speaking_pattern=character.speech_style or "speaks gently and thoughtfully",
        )

    @staticmethod
    def _define_emotional_profile(character: CharacterProfile) -> EmotionalProfile:
        if _any_trait(character.personality, r"meraklı|curious"):
            return EmotionalProfile(base_emotion="curious")
        if _any_trait(character.personality, r"utangaç|shy"):
            return EmotionalProfile(base_emotion="shy")
        return EmotionalProfile(base_emotion="happy")

    @staticmethod
    def _typical_reactions(name: str, language: str) -> dict[str, str]:
        if language == "tr":
            return {
                "happy": f"{name} mutlulukla gülümsedi",
                "excited": f"{name}'ın gözleri parladı",
                "worried": f"{name} kaşlarını çattı",
                "scared": f"{name} titredi ama cesur olmaya çalıştı",
                "curious": f"{name} merakla eğildi",
                "proud": f"{name} gururla göğsünü kabarttı",
                "sad": f"{name}'ın gözleri doldu",
                "default": f"{name} düşünceli görünüyordu",
            }
        return {
            "happy": f"{name} smiled with joy",
            "excited": f"{name}'s eyes sparkled",
            "worried": f"{name} frowned with concern",
            "scared": f"{name} trembled but tried to be brave",
            "curious": f"{name} leaned in curiously",
            "proud": f"{name} puffed up with pride",
            "sad": f"{name}'s eyes welled up",
            "default": f"{name} looked thoughtful",
        }

    @staticmethod
    def _catch_phrases(name: str, language: str) -> tuple[str, ...]:
        if language == "tr":
            return (
                f'"Vay canına!" dedi {name}',
                f'"Harika!" diye bağırdı {name}',
                f'"Belki..." diye düşündü {name}',
                f'"Hadi bakalım!" dedi {name} cesaretle',
                f'"Teşekkür ederim!" dedi {name} mutlulukla',
            )
        return (
            f'"Wow!" said {name}',
            f'"Amazing!" exclaimed {name}',
            f'"Maybe..." thought {name}',
            f'"Let\'s go!" said {name} bravely',
            f'"Thank you!" said {name} happily',
        )
