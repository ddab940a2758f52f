"""
Stage 2: expand one story beat into a vivid, page-sized scene.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from drawtale.common import ChatResult, CompletionCallable, call_chat_completion
from drawtale.common.errors import SceneExpansionDegraded
from drawtale.common.payloads import decode_completion_payload

from .models import CharacterProfile, Scene, StageOutcome, dedupe_elements, normalize_emotion
from .policy import (
    AgeParameters,
    VocabularyLevel,
    count_sentences,
    count_words,
    get_vocabulary_level,
)
from .prompting import build_scene_prompt
from .schemas import ScenePayload

logger = logging.getLogger(__name__)


class SceneExpander:
    """
    Converts beats into scenes. Failures degrade the page instead of raising.

    ``budget_attempts`` above one re-prompts when the word count misses the
    age bucket's budget and keeps the closest attempt; the default only logs.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
        budget_attempts: int = 1,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._model = (
            model
            or os.getenv("DRAWTALE_SCENE_MODEL")
            or os.getenv("LITELLM_STORY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4o"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._budget_attempts = max(1, budget_attempts)

    @property
    def model(self) -> str:
        return self._model

    async def expand(
        self,
        beat: str,
        page_number: int,
        character: CharacterProfile,
        age_params: AgeParameters,
        *,
        language: str = "en",
        mood: str = "magical",
        vocabulary: VocabularyLevel | None = None,
        temperature: float = 0.8,
        max_output_tokens: int | None = 900,
        **response_kwargs: Any,
    ) -> StageOutcome:
        """
        Expand ``beat`` for ``page_number``. Never raises for backend or payload errors.
        """
        vocabulary = vocabulary or get_vocabulary_level(character.age, language)
        low, high = age_params.word_budget
        logger.info("[Stage 2] Expanding scene %d", page_number)

        best: Scene | None = None
        failure: str | None = None
        feedback: str | None = None

        for attempt in range(1, self._budget_attempts + 1):
            prompt = build_scene_prompt(
                character,
                beat,
                page_number,
                age_params,
                vocabulary,
                language=language,
                mood=mood,
                budget_feedback=feedback,
            )

            try:
                result: ChatResult = await self._completion_fn(
                    model=self._model,
                    messages=prompt.as_messages(),
                    temperature=temperature,
                    max_tokens=max_output_tokens,
                    api_key=self._api_key,
                    metadata={"stage": "scene", "page": page_number},
                    **response_kwargs,
                )
            except Exception as exc:
                failure = f"completion failed: {exc}"
                break

            decoded = decode_completion_payload(result.text, ScenePayload)
            if decoded.payload is None:
                failure = decoded.error or "empty payload"
                break

            scene = Scene(
                page_number=page_number,
                text=decoded.payload.text,
                emotion=normalize_emotion(decoded.payload.emotion),
                visual_elements=dedupe_elements(decoded.payload.visual_elements),
            )
            words = count_words(scene.text)
            if best is None or _budget_distance(words, low, high) < _budget_distance(
                count_words(best.text), low, high
            ):
                best = scene

            if low <= words <= high:
                break

            logger.warning(
                "[Stage 2] Scene %d has %d words, outside the %d-%d budget (attempt %d/%d)",
                page_number,
                words,
                low,
                high,
                attempt,
                self._budget_attempts,
            )
            feedback = f"the scene had {words} words; write between {low} and {high} words."

        if best is not None:
            if failure:
                logger.warning(
                    "[Stage 2] Scene %d re-prompt failed, keeping earlier attempt: %s",
                    page_number,
                    failure,
                )
            else:
                logger.info(
                    "[Stage 2] Scene %d expanded (%d words, %d sentences, target %d)",
                    page_number,
                    count_words(best.text),
                    count_sentences(best.text),
                    age_params.sentences_per_page,
                )
            return StageOutcome(scene=best)

        notice = SceneExpansionDegraded(page_number, failure or "no scene produced")
        logger.warning("[Stage 2] %s", notice)
        return StageOutcome(scene=Scene.fallback(page_number, beat), notice=notice)


def _budget_distance(words: int, low: int, high: int) -> int:
    if words < low:
        return low - words
    if words > high:
        return words - high
    return 0
