"""
Prompt construction for the outline, scene and dialogue completion stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .policy import WORD_TOLERANCE, AgeParameters, VocabularyLevel

if TYPE_CHECKING:
    from drawtale.pipeline.consistency import TextGuidelines

    from .guidance import GuidanceEntry
    from .models import CharacterProfile, Scene
    from .request import AnalysisInsights, GenerationRequest

MAX_DIALOGUE_LINES = 4


@dataclass(frozen=True)
class StoryPrompt:
    """
    Container for the system and user prompts passed to the completion backend.
    """

    system: str
    user: str

    def as_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def _language_name(language: str) -> str:
    return "Turkish" if language == "tr" else "English"


def build_outline_prompt(
    request: "GenerationRequest",
    insights: "AnalysisInsights",
    age_params: AgeParameters,
    mood: str,
    guidance: "GuidanceEntry | None" = None,
) -> StoryPrompt:
    """
    Build the prompt pair asking for a character and one concrete beat per page.
    """
    page_count = age_params.page_count
    age = request.child_age
    gender = request.child_gender or "female"
    gender_rule = (
        f"The main character must be {request.child_gender}, like the child."
        if request.child_gender
        else "Choose the main character's gender freely."
    )

    system_prompt = f"""You are an award-winning children's picture-book author and character designer.
Your expertise is captivating, educational stories for {age}-year-old readers.
Every story both delights the child and teaches a value.

GOOD CHARACTER EXAMPLE:
{{
  "name": "Luna",
  "type": "white rabbit",
  "gender": "{gender}",
  "age": {age},
  "appearance": "Snow-white soft fur, a pink ribbon bow between her ears, big blue eyes, a small red backpack",
  "personality": ["curious", "shy", "kind", "helpful"],
  "speechStyle": "Speaks softly, thinks a lot, often says 'maybe' and 'I think'",
  "arc": {{
    "start": "Does not know how to share and keeps her toys to herself",
    "middle": "Sees her friends are sad, feels for them, learns from a wise owl",
    "end": "Learns that sharing brings joy and becomes generous"
  }}
}}

BAD CHARACTER EXAMPLE (never do this):
{{"name": "Rabbit", "type": "animal", "personality": ["good"], "arc": {{"start": "bad", "end": "good"}}}}

GOOD BEATS (each one a concrete event):
1. "Luna chases a butterfly in the garden and finds a glowing golden stone"
2. "When the stone glows, a talking squirrel appears and asks for help"
3. "Together they walk into the forest to search for the squirrel's lost family"
4. "Among the dark trees they feel afraid but cheer each other on"
5. "They find the squirrel family and the stone stays with Luna as a gift"

BAD BEATS (summaries, never do this): "The adventure began", "Found a friend", "They had fun".

RULES:
1. The main character is {age} years old so the child can see themselves.
2. {gender_rule}
3. Describe the appearance in detail: colours, accessories, clothing.
4. Give at least two distinct personality traits.
5. The speech style must be unique to this character.
6. The arc must be clear and visible: start, change, result.
7. Every beat is ONE concrete event: who, what, where and what happened are all clear.
8. Exactly {page_count} beats for {page_count} pages.
9. Write every field in {_language_name(request.language)}.

Return JSON only. No explanations."""

    sections: list[str] = [
        "Child profile:",
        request.summary_for_prompt(),
    ]

    if request.visual_description:
        sections.append(
            f"""
WHAT THE DRAWING SHOWS (derive the main character from it):
"{request.visual_description}"
- The main character is the creature in the drawing.
- Carry the drawing's colours and features over to the character.
- Use the drawing's objects and setting in the story."""
        )

    sections.append(f"\nDrawing analysis findings:\n{insights.summary_for_prompt()}")

    themes = request.themes or age_params.themes
    sections.append(f"\nTheme suggestions: {', '.join(themes)}")
    sections.append(f"Target pages: {page_count}")
    sections.append(f"Mood: {mood}")
    sections.append(f"Prose complexity: {age_params.complexity}")

    if guidance is not None:
        sections.append(
            f"""
SUPPORTIVE STORY MODE (important):
The drawing shows emotionally sensitive content. Follow these principles.

Principles:
{guidance.principles}

Character arc:
{guidance.arc_guidance}

Avoid and replace:
{guidance.avoidance}

- Tell hard things through metaphor and symbol, never directly.
- Make the frightening thing a character that can be overcome.
- The character gains strength and a sense of control.
- Include safe places and protective figures.
- The story must end with a positive transformation."""
        )

    sections.append(
        f"""
TASK: Create the character and structure for a {page_count}-page story.

JSON format:
{{
  "theme": "main theme (e.g. sharing, courage, friendship)",
  "educationalValue": "the value the child learns, one sentence",
  "mood": "{mood}",
  "mainCharacter": {{
    "name": "character name",
    "type": "kind of animal or creature",
    "gender": "male or female",
    "age": {age},
    "appearance": "detailed appearance (colours, accessories, clothing)",
    "personality": ["trait1", "trait2", "trait3"],
    "speechStyle": "how they talk",
    "arc": {{"start": "...", "middle": "...", "end": "..."}}
  }},
  "storyBeats": ["{page_count} concrete events"]
}}"""
    )

    return StoryPrompt(system=system_prompt, user="\n".join(sections))


def build_scene_prompt(
    character: "CharacterProfile",
    beat: str,
    page_number: int,
    age_params: AgeParameters,
    vocabulary: VocabularyLevel,
    *,
    language: str = "en",
    mood: str = "magical",
    budget_feedback: str | None = None,
) -> StoryPrompt:
    """
    Build the prompt pair turning one beat into a vivid scene.
    """
    words = age_params.words_per_page
    sentences = age_params.sentences_per_page
    avoid = ", ".join(vocabulary.forbidden_concepts) or "nothing specific"

    system_prompt = f"""You are a children's picture-book scene writer. Every sentence reads like a picture.
Write a REAL scene, never a summary.

GOOD SCENE EXAMPLE (about {words} words):
"{character.name} stopped under the big plane tree. Something shiny caught {character.name}'s eye: a red, sparkling toy car!
'Wow!' {character.name} shouted, kneeling down to pick it up carefully.
{character.name} spun the wheels and went 'Vroom vroom!' Eyes shining with joy.
Just then a voice called from behind: 'Hello!' {character.name} turned and saw a little squirrel."

BAD SCENE EXAMPLE (never do this): "Our hero found new friends. They had fun together."

EVERY SCENE HAS:
1. OPENING: where the character is and what they see
2. ACTION: concrete movement (held, looked, ran)
3. SENSORY DETAIL: colours, shapes, objects
4. SOUND: dialogue or a sound effect
5. EMOTION: an inner reaction
6. TRANSITION: something changes, bridging to the next page

RULES:
- {sentences} sentences, {words} words (plus or minus {WORD_TOLERANCE} is fine)
- Prose complexity: {age_params.complexity}
- Keep words at most {vocabulary.max_word_length} letters where possible ({vocabulary.complexity} vocabulary)
- Never use these concepts: {avoid}
- Use the character's name at least once
- Story mood: {mood}
- Write in {_language_name(language)}

Character:
{character.summary_for_prompt()}"""

    user_prompt = f"""SCENE BEAT: "{beat}"
PAGE: {page_number}
TARGET: {sentences} sentences, {words} words

TASK: Turn the beat into a living scene.

JSON:
{{
  "text": "scene text",
  "emotion": "happy / excited / curious / worried / scared / proud / sad",
  "visualElements": ["visual element 1", "visual element 2", "visual element 3"]
}}"""

    if budget_feedback:
        user_prompt += f"\n\nYOUR PREVIOUS ATTEMPT MISSED THE TARGET: {budget_feedback}"

    return StoryPrompt(system=system_prompt, user=user_prompt)


def build_dialogue_prompt(
    scene: "Scene",
    character: "CharacterProfile",
    *,
    language: str = "en",
    guidelines: "TextGuidelines | None" = None,
) -> StoryPrompt:
    """
    Build the prompt pair asking for a few natural dialogue lines in a scene.

    When ``guidelines`` are given, the character's tracked voice (tone, reaction,
    an unused catch phrase and lines already spoken) is added as a VOICE section.
    """
    system_prompt = f"""You are a dialogue writer for children's picture books.
You write NATURAL, CHARACTERFUL conversations.

GOOD DIALOGUE:
"{character.name} held the toy car out to Bear.
'Maybe... maybe I can share it with you?' {character.name} said softly.
Bear's eyes lit up. 'Really? Thank you so much!'
{character.name} smiled. 'Just be careful, okay?'"

BAD DIALOGUE (never do this): "'Hello,' she said. 'Thanks,' said Bear. 'Okay,' she said."

RULES:
1. Short, simple sentences for a {character.age}-year-old reader
2. Every character speaks differently
3. Feelings come through ("softly", "excitedly")
4. Reflect the character's personality: {', '.join(character.personality)}
5. Add at most {MAX_DIALOGUE_LINES} lines of dialogue
6. Write in {_language_name(language)}

Character speech style: {character.speech_style or 'warm and simple'}"""
    if guidelines is not None:
        system_prompt += "\n\n" + _voice_section(guidelines)

    user_prompt = f"""Scene: {scene.text}
Character: {character.name}
Emotion: {scene.emotion}

TASK: If it fits, add natural dialogue to the scene. If not, leave it as it is.

JSON format:
{{
  "text": "scene text with dialogue, or the original text",
  "dialogue": ["line 1", "line 2"]
}}"""

    return StoryPrompt(system=system_prompt, user=user_prompt)


def _voice_section(guidelines: "TextGuidelines") -> str:
    style = guidelines.speech_style
    lines = [
        f"- Tone: {style.tone}, {style.speaking_pattern}",
        f"- Sentences: {style.sentence_length}, {style.punctuation_style} punctuation",
        f"- Reaction when {guidelines.current_emotion}: {guidelines.reaction_pattern}",
    ]
    if style.favorite_words:
        lines.append(f"- Favorite words: {', '.join(style.favorite_words)}")
    if guidelines.suggested_phrase:
        lines.append(f"- Catch phrase you may use once: {guidelines.suggested_phrase}")
    if guidelines.avoid_repetition:
        lines.append(f"- Already said, do not repeat: {' | '.join(guidelines.avoid_repetition)}")
    if style.avoid_words:
        lines.append(f"- Never use: {', '.join(style.avoid_words)}")
    return "VOICE:\n" + "\n".join(lines)
