"""
Image prompt composition for DrawTale story pages.

Prompts are ordered by attention priority: the character anchor always comes
first, then the format declaration, then scene-specific content.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from drawtale.story_generation.policy import StoryStyle

from .identity import CharacterIdentity

FORMAT_DECLARATION = "(children's storybook watercolor illustration:1.4), soft pastel colors"
QUALITY_SUFFIX = "(plain background:1.3), professional children's book art"
DEFAULT_EMOTION_STYLE = "friendly expression"
MAX_SCENE_ELEMENTS = 3

EMOTION_STYLES: dict[str, str] = {
    "happy": "(warm smile:1.3), bright eyes, joyful pose",
    "excited": "(sparkling eyes:1.2), energetic pose, dynamic",
    "curious": "wide eyes, tilted head, attentive",
    "worried": "concerned expression, gentle posture",
    "scared": "wide eyes, cautious pose, seeking comfort",
    "proud": "confident stance, satisfied smile",
    "sad": "gentle expression, soft eyes",
}

_COMPLEXITY_WORDS = re.compile(r"detailed|complex|intricate", re.IGNORECASE)


def clean_scene_element(element: str) -> str:
    return _COMPLEXITY_WORDS.sub("simple", element).strip()


def composition_for_page(page_number: int, total_pages: int) -> str:
    if page_number == 1:
        return "(character introduction:1.3), centered composition"
    if page_number == total_pages:
        return "happy ending, (satisfied expression:1.3)"
    return "story scene, character focus"


def compose_visual_prompt(
    identity: CharacterIdentity,
    scene_elements: Sequence[str],
    emotion: str,
    page_number: int,
    total_pages: int,
    style: StoryStyle,
) -> str:
    """
    Build the image prompt for one page.

    Parts, in order: anchor tags, format declaration, up to three scene
    elements, emotion atmosphere, page composition, palette and mood, quality.
    An empty part (a page without scene elements) is left out.
    """
    elements = [clean_scene_element(element) for element in scene_elements[:MAX_SCENE_ELEMENTS]]
    palette = ", ".join(style.color_palette[:3])

    parts = [
        identity.anchor_prompt,
        FORMAT_DECLARATION,
        ", ".join(filter(None, elements)),
        EMOTION_STYLES.get(emotion, DEFAULT_EMOTION_STYLE),
        composition_for_page(page_number, total_pages),
        f"{palette}, {style.mood}" if palette else style.mood,
        QUALITY_SUFFIX,
    ]
    return ", ".join(part for part in parts if part)


MAX_PROMPT_WORDS = 150
LEADING_WORDS = 40

_NEGATIVE_PATTERN = re.compile(r"\b(no|not|without|don't|never|avoid)\b", re.IGNORECASE)
_FORMAT_TERMS = ("illustration", "watercolor", "storybook")
_CONTRADICTIONS: tuple[tuple[str, str], ...] = (
    ("detailed", "simple"),
    ("realistic", "cartoon"),
    ("complex", "clean"),
    ("intricate", "minimal"),
)


@dataclass(frozen=True)
class PromptLintReport:
    score: int
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.score >= 70


def lint_visual_prompt(prompt: str, *, anchor_prompt: str | None = None) -> PromptLintReport:
    """
    Report advisory problems with an image prompt. Never raises on content.
    """
    issues: list[str] = []
    suggestions: list[str] = []
    score = 100

    words = prompt.split()
    if len(words) > MAX_PROMPT_WORDS:
        issues.append(f"Prompt too long: {len(words)} words (keep under {MAX_PROMPT_WORDS})")
        suggestions.append("Reduce redundant descriptions")
        score -= 15

    leading = " ".join(words[:LEADING_WORDS]).lower()
    if not any(term in leading for term in _FORMAT_TERMS):
        issues.append(f"Format declaration not in the first {LEADING_WORDS} words")
        suggestions.append("Place the storybook illustration declaration right after the anchor tags")
        score -= 20

    if anchor_prompt and not prompt.startswith(anchor_prompt):
        issues.append("Character anchor tags are not at the start of the prompt")
        suggestions.append("Start every prompt with the character's anchor tags")
        score -= 20

    for match in sorted({m.group(1).lower() for m in _NEGATIVE_PATTERN.finditer(prompt)}):
        issues.append(f'Negative word found: "{match}"')
        suggestions.append("Use positive alternatives instead")
        score -= 10

    lowered = prompt.lower()
    for first, second in _CONTRADICTIONS:
        if first in lowered and second in lowered:
            issues.append(f'Contradiction: "{first}" vs "{second}"')
            suggestions.append(f'Remove "{first}"; it conflicts with "{second}"')
            score -= 15

    if ":1." not in prompt:
        suggestions.append("Consider weight syntax (keyword:1.3) for important elements")

    return PromptLintReport(
        score=max(score, 0),
        issues=tuple(issues),
        suggestions=tuple(dict.fromkeys(suggestions)),
    )
