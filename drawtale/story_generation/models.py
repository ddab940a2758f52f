"""
Story data model shared by the generation stages and the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

EMOTIONS: tuple[str, ...] = ("happy", "excited", "curious", "worried", "scared", "proud", "sad")
DEFAULT_EMOTION = "happy"


def normalize_emotion(value: Any) -> str:
    """Map free-form emotion text onto one of :data:`EMOTIONS`."""
    text = str(value or "").strip().lower()
    return text if text in EMOTIONS else DEFAULT_EMOTION


def dedupe_elements(values: Iterable[Any]) -> tuple[str, ...]:
    """
    Drop blanks and case-insensitive duplicates, keeping first-seen order and casing.
    """
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        text = str(value or "").strip()
        key = text.casefold()
        if text and key not in seen:
            seen.add(key)
            result.append(text)
    return tuple(result)


@dataclass(frozen=True)
class CharacterArc:
    start: str = ""
    middle: str = ""
    end: str = ""


@dataclass(frozen=True)
class CharacterProfile:
    """
    The story's main character as returned by the outline stage.

    Attributes
    ----------
    name:
        Character name; expected to appear in every page's text.
    species:
        Kind of creature (``"white rabbit"``), the heaviest visual anchor.
    gender:
        ``"male"``/``"female"`` or ``None`` when unknown.
    age:
        Always the requested child's age.
    appearance:
        Detailed appearance text: colours, accessories, clothing.
    personality:
        At least two traits.
    speech_style:
        How the character talks; injected into scene and dialogue prompts.
    arc:
        Growth arc across the story.
    """

    name: str
    species: str
    gender: str | None
    age: int
    appearance: str
    personality: tuple[str, ...]
    speech_style: str = ""
    arc: CharacterArc = field(default_factory=CharacterArc)

    def context_bullets(self) -> list[str]:
        bullets: list[str] = [
            f"Name: {self.name}",
            f"Species: {self.species}",
            f"Age: {self.age}",
        ]

        if self.gender:
            bullets.append(f"Gender: {self.gender}")

        bullets.append(f"Appearance: {self.appearance}")

        if self.personality:
            bullets.append(f"Personality: {', '.join(self.personality)}")

        if self.speech_style:
            bullets.append(f"Speech style: {self.speech_style}")

        return bullets

    def summary_for_prompt(self) -> str:
        return "\n".join(f"- {line}" for line in self.context_bullets())

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "species": self.species,
            "gender": self.gender,
            "age": self.age,
            "appearance": self.appearance,
            "personality": list(self.personality),
            "speech_style": self.speech_style,
            "arc": {"start": self.arc.start, "middle": self.arc.middle, "end": self.arc.end},
        }


@dataclass(frozen=True)
class StoryOutline:
    theme: str
    educational_value: str
    mood: str
    main_character: CharacterProfile
    story_beats: tuple[str, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme,
            "educational_value": self.educational_value,
            "mood": self.mood,
            "main_character": self.main_character.as_dict(),
            "story_beats": list(self.story_beats),
        }


@dataclass(frozen=True)
class Scene:
    """
    One expanded page of prose. ``degraded`` marks a scene that fell back to its beat.
    """

    page_number: int
    text: str
    emotion: str = DEFAULT_EMOTION
    visual_elements: tuple[str, ...] = ()
    dialogue: tuple[str, ...] = ()
    degraded: bool = False

    @classmethod
    def fallback(cls, page_number: int, beat: str) -> "Scene":
        return cls(page_number=page_number, text=beat, degraded=True)

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "emotion": self.emotion,
            "visual_elements": list(self.visual_elements),
            "dialogue": list(self.dialogue),
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class StageOutcome:
    """
    Scene produced by stage 2 or 3, with the notice recorded if the stage degraded.
    """

    scene: Scene
    notice: Exception | None = None

    @property
    def degraded(self) -> bool:
        return self.notice is not None


@dataclass(frozen=True)
class StoryPage:
    page_number: int
    text: str
    scene_description: str
    visual_prompt: str
    seed: int
    emotion: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "scene_description": self.scene_description,
            "visual_prompt": self.visual_prompt,
            "seed": self.seed,
            "emotion": self.emotion,
        }
