"""
Stage 3: weave a few lines of character dialogue into an expanded scene.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from typing import TYPE_CHECKING, Any

from drawtale.common import ChatResult, CompletionCallable, call_chat_completion
from drawtale.common.errors import DialogueEnhancementSkipped
from drawtale.common.payloads import decode_completion_payload

from .models import CharacterProfile, Scene, StageOutcome
from .policy import DIALOGUE_MIN_AGE
from .prompting import MAX_DIALOGUE_LINES, build_dialogue_prompt
from .schemas import DialoguePayload

if TYPE_CHECKING:
    from drawtale.pipeline.consistency import TextGuidelines

logger = logging.getLogger(__name__)


class DialogueEnhancer:
    """
    Adds dialogue for characters aged :data:`DIALOGUE_MIN_AGE` and up.

    Any failure keeps the scene as it was and records a notice.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._model = (
            model
            or os.getenv("DRAWTALE_DIALOGUE_MODEL")
            or os.getenv("LITELLM_STORY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4o"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion

    @property
    def model(self) -> str:
        return self._model

    async def enhance(
        self,
        scene: Scene,
        character: CharacterProfile,
        *,
        language: str = "en",
        guidelines: TextGuidelines | None = None,
        temperature: float = 0.7,
        max_output_tokens: int | None = 900,
        **response_kwargs: Any,
    ) -> StageOutcome:
        if character.age < DIALOGUE_MIN_AGE:
            return StageOutcome(scene=scene)

        logger.info("[Stage 3] Enhancing scene %d with dialogue", scene.page_number)
        prompt = build_dialogue_prompt(scene, character, language=language, guidelines=guidelines)

        try:
            result: ChatResult = await self._completion_fn(
                model=self._model,
                messages=prompt.as_messages(),
                temperature=temperature,
                max_tokens=max_output_tokens,
                api_key=self._api_key,
                metadata={"stage": "dialogue", "page": scene.page_number},
                **response_kwargs,
            )
        except Exception as exc:
            return self._skip(scene, f"completion failed: {exc}")

        decoded = decode_completion_payload(result.text, DialoguePayload)
        if decoded.payload is None:
            return self._skip(scene, decoded.error or "empty payload")

        payload = decoded.payload
        dialogue = tuple(line.strip() for line in payload.dialogue if line and line.strip())
        enhanced = dataclasses.replace(
            scene,
            text=payload.text or scene.text,
            dialogue=dialogue[:MAX_DIALOGUE_LINES],
        )
        logger.info(
            "[Stage 3] Scene %d enhanced with %d dialogue line(s)",
            scene.page_number,
            len(enhanced.dialogue),
        )
        return StageOutcome(scene=enhanced)

    def _skip(self, scene: Scene, reason: str) -> StageOutcome:
        notice = DialogueEnhancementSkipped(scene.page_number, reason)
        logger.warning("[Stage 3] %s", notice)
        return StageOutcome(scene=scene, notice=notice)
