"""
Stage 1: turn a request and its drawing analysis into a validated story outline.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from drawtale.common import ChatResult, CompletionCallable, call_chat_completion
from drawtale.common.errors import MalformedCompletionPayload, OutlineGenerationFailed
from drawtale.common.payloads import decode_completion_payload

from .guidance import GuidanceCatalog, load_guidance_catalog
from .models import CharacterArc, CharacterProfile, StoryOutline, dedupe_elements
from .policy import (
    MOODS,
    AgeParameters,
    count_words,
    determine_story_mood,
    get_age_parameters,
)
from .prompting import StoryPrompt, build_outline_prompt
from .request import AnalysisInsights, GenerationRequest, normalize_gender
from .schemas import OutlinePayload

logger = logging.getLogger(__name__)

MIN_PERSONALITY_TRAITS = 2
MIN_BEAT_WORDS = 4


class OutlineGenerator:
    """
    Produces the character and one concrete beat per page.

    Any failure here is fatal for the request: without an outline there is no
    character to derive an identity from.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
        guidance_catalog: GuidanceCatalog | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._model = (
            model
            or os.getenv("DRAWTALE_OUTLINE_MODEL")
            or os.getenv("LITELLM_STORY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4o"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._guidance_catalog = guidance_catalog

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    @property
    def guidance_catalog(self) -> GuidanceCatalog:
        if self._guidance_catalog is None:
            self._guidance_catalog = load_guidance_catalog()
        return self._guidance_catalog

    async def generate(
        self,
        request: GenerationRequest,
        insights: AnalysisInsights,
        *,
        age_params: AgeParameters | None = None,
        mood: str | None = None,
        temperature: float = 0.9,
        max_output_tokens: int | None = 1800,
        **response_kwargs: Any,
    ) -> StoryOutline:
        """
        Request an outline and validate it, raising :class:`OutlineGenerationFailed`.
        """
        age_params = age_params or get_age_parameters(request.child_age)
        mood = mood or determine_story_mood(insights)
        guidance = self.guidance_catalog.for_category(request.sensitive_category)

        prompt: StoryPrompt = build_outline_prompt(request, insights, age_params, mood, guidance)
        logger.info(
            "[Stage 1] Creating outline: age=%d pages=%d mood=%s guidance=%s",
            request.child_age,
            age_params.page_count,
            mood,
            guidance.category if guidance else None,
        )

        try:
            result: ChatResult = await self._completion_fn(
                model=self._model,
                messages=prompt.as_messages(),
                temperature=temperature,
                max_tokens=max_output_tokens,
                api_key=self._api_key,
                metadata={"stage": "outline"},
                **response_kwargs,
            )
        except Exception as exc:
            logger.error("[Stage 1] Completion call failed: %s", exc)
            raise OutlineGenerationFailed(f"Outline completion failed: {exc}") from exc

        try:
            payload = decode_completion_payload(result.text, OutlinePayload).unwrap("outline")
        except MalformedCompletionPayload as exc:
            logger.error("[Stage 1] %s", exc)
            raise OutlineGenerationFailed(f"Outline payload was malformed: {exc.reason}") from exc

        outline = self._build_outline(payload, request, age_params, mood)
        logger.info(
            "[Stage 1] Outline created: %s - %s",
            outline.main_character.name,
            outline.theme,
        )
        return outline

    def _build_outline(
        self,
        payload: OutlinePayload,
        request: GenerationRequest,
        age_params: AgeParameters,
        mood: str,
    ) -> StoryOutline:
        page_count = age_params.page_count

        beats = [beat.strip() for beat in payload.story_beats if beat and beat.strip()]
        if len(beats) < page_count:
            raise OutlineGenerationFailed(
                f"Outline returned {len(beats)} beat(s); {page_count} are required."
            )
        if len(beats) > page_count:
            logger.info("[Stage 1] Truncating %d beats to %d", len(beats), page_count)
            beats = beats[:page_count]

        for index, beat in enumerate(beats, start=1):
            if count_words(beat) < MIN_BEAT_WORDS:
                raise OutlineGenerationFailed(
                    f"Beat {index} is not a concrete event: {beat!r}"
                )

        character = payload.main_character
        personality = dedupe_elements(character.personality)
        if len(personality) < MIN_PERSONALITY_TRAITS:
            raise OutlineGenerationFailed(
                f"Character {character.name!r} has {len(personality)} personality trait(s); "
                f"at least {MIN_PERSONALITY_TRAITS} are required."
            )

        resolved_mood = (payload.mood or "").strip().lower()
        if resolved_mood not in MOODS:
            resolved_mood = mood

        profile = CharacterProfile(
            name=character.name,
            species=character.species,
            gender=request.child_gender or normalize_gender(character.gender),
            age=request.child_age,
            appearance=character.appearance,
            personality=personality,
            speech_style=character.speech_style,
            arc=CharacterArc(
                start=character.arc.start,
                middle=character.arc.middle,
                end=character.arc.end,
            ),
        )

        return StoryOutline(
            theme=payload.theme,
            educational_value=payload.educational_value,
            mood=resolved_mood,
            main_character=profile,
            story_beats=tuple(beats),
        )
