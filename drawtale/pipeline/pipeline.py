"""
Orchestrates the full DrawTale pipeline from drawing analysis to illustrated story pages.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from drawtale.common import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CompletionCallable,
    ResilientCompletion,
    RetryPolicy,
    call_chat_completion,
)
from drawtale.common.errors import StoryGenerationAborted
from drawtale.illustration import (
    CharacterIdentity,
    compose_visual_prompt,
    derive_character_identity,
    page_seed,
)
from drawtale.story_generation import (
    AgeParameters,
    AnalysisInsights,
    DialogueEnhancer,
    GenerationRequest,
    GuidanceCatalog,
    OutlineGenerator,
    Scene,
    SceneExpander,
    StoryOutline,
    StoryPage,
    determine_story_mood,
    get_age_parameters,
    get_story_style,
    get_vocabulary_level,
)

from .consistency import ConsistencyCheckResult, ConsistencyPolicy, StoryConsistencyEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class StageNotice:
    """Record of a page that degraded in stage 2 or 3."""

    stage: str
    page_number: int
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage, "page_number": self.page_number, "detail": self.detail}


@dataclass
class StoryPackage:
    """Aggregated output of the DrawTale pipeline."""

    request: GenerationRequest
    outline: StoryOutline
    identity: CharacterIdentity
    pages: list[StoryPage]
    consistency: ConsistencyCheckResult
    title: str
    notices: list[StageNotice] = field(default_factory=list)

    @property
    def degraded_pages(self) -> list[int]:
        return sorted({notice.page_number for notice in self.notices})

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "request": self.request.as_dict(),
            "outline": self.outline.as_dict(),
            "identity": self.identity.as_dict(),
            "pages": [page.as_dict() for page in self.pages],
            "consistency": self.consistency.as_dict(),
            "notices": [notice.to_dict() for notice in self.notices],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)


class DrawTaleOrchestrator:
    """
    High-level coordinator chaining the outline, scene, dialogue and visual stages.

    Every completion call goes through one :class:`ResilientCompletion`, so all
    stages share the same circuit breaker.
    """

    def __init__(
        self,
        *,
        completion_fn: CompletionCallable | None = None,
        outline_generator: OutlineGenerator | None = None,
        scene_expander: SceneExpander | None = None,
        dialogue_enhancer: DialogueEnhancer | None = None,
        guidance_catalog: GuidanceCatalog | None = None,
        consistency_policy: ConsistencyPolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        budget_attempts: int = 1,
    ) -> None:
        self._completion = ResilientCompletion(
            completion_fn or call_chat_completion,
            breaker=CircuitBreaker(breaker_config or CircuitBreakerConfig.from_env()),
            retry_policy=retry_policy or RetryPolicy.from_env(),
        )
        self._outline_generator = outline_generator or OutlineGenerator(
            completion_fn=self._completion,
            guidance_catalog=guidance_catalog,
        )
        self._scene_expander = scene_expander or SceneExpander(
            completion_fn=self._completion,
            budget_attempts=budget_attempts,
        )
        self._dialogue_enhancer = dialogue_enhancer or DialogueEnhancer(
            completion_fn=self._completion,
        )
        self._consistency_policy = consistency_policy or ConsistencyPolicy()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._completion.breaker

    async def run_from_request_mapping(
        self,
        data: Mapping[str, Any],
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> StoryPackage:
        """
        Complete pipeline from a raw request mapping with an embedded ``analysis`` block.
        """
        self._notify(progress_callback, "request:parsing", source="mapping")
        request = GenerationRequest.from_mapping(data)
        analysis = data.get("analysis") or data.get("drawing_analysis") or data.get("drawingAnalysis")
        insights = AnalysisInsights.from_mapping(analysis or {})
        return await self.generate(
            request,
            insights,
            progress_callback=progress_callback,
            timeout=timeout,
        )

    async def run_from_request_file(
        self,
        request_path: Path | str,
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> StoryPackage:
        """
        Load request data from a YAML or JSON file and run the pipeline.
        """
        request_path = Path(request_path)
        self._notify(progress_callback, "request:parsing", source=str(request_path))
        data = _load_mapping_file(request_path)
        return await self.run_from_request_mapping(
            data,
            progress_callback=progress_callback,
            timeout=timeout,
        )

    async def generate(
        self,
        request: GenerationRequest,
        insights: AnalysisInsights,
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> StoryPackage:
        """
        Run all stages for one request.

        Raises :class:`OutlineGenerationFailed` when no outline can be produced and
        :class:`StoryGenerationAborted` when ``timeout`` seconds pass first.
        """
        completed: dict[int, Scene] = {}
        run = self._run_pipeline(request, insights, completed, progress_callback)
        if timeout is None:
            return await run

        try:
            return await asyncio.wait_for(run, timeout)
        except asyncio.TimeoutError as exc:
            partial = [completed[number] for number in sorted(completed)]
            logger.warning(
                "Story generation aborted after %.1fs with %d completed scene(s)",
                timeout,
                len(partial),
            )
            raise StoryGenerationAborted(
                f"Story generation exceeded {timeout:g}s", partial_scenes=partial
            ) from exc

    async def regenerate_page(
        self,
        package: StoryPackage,
        page_number: int,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> StoryPackage:
        """
        Re-expand one beat and rebuild its page, keeping the identity and seed.
        """
        total_pages = len(package.pages)
        if not 1 <= page_number <= total_pages:
            raise ValueError(f"Page {page_number} is outside 1..{total_pages}.")

        request = package.request
        character = package.outline.main_character
        age_params = get_age_parameters(request.child_age)

        engine = StoryConsistencyEngine(self._consistency_policy)
        engine.initialize(character, request.child_age, request.language, identity=package.identity)

        self._notify(progress_callback, "page:regenerating", page_number=page_number)
        scene, notices = await self._build_scene(
            package.outline.story_beats[page_number - 1],
            page_number,
            package.outline,
            request,
            age_params,
            engine,
            {},
            progress_callback,
        )

        page = StoryPage(
            page_number=page_number,
            text=scene.text,
            scene_description=_scene_description(character.name, scene),
            visual_prompt=compose_visual_prompt(
                package.identity,
                scene.visual_elements,
                scene.emotion,
                page_number,
                total_pages,
                get_story_style(request.child_age),
            ),
            seed=page_seed(package.identity, page_number),
            emotion=scene.emotion,
        )
        pages = [page if existing.page_number == page_number else existing for existing in package.pages]

        consistency = engine.validate_consistency(pages)

        kept = [notice for notice in package.notices if notice.page_number != page_number]
        self._notify(
            progress_callback,
            "page:regenerated",
            page_number=page_number,
            score=consistency.score,
        )
        return dataclasses.replace(
            package,
            pages=pages,
            consistency=consistency,
            notices=sorted(kept + notices, key=lambda notice: notice.page_number),
        )

    async def _run_pipeline(
        self,
        request: GenerationRequest,
        insights: AnalysisInsights,
        completed: dict[int, Scene],
        progress_callback: ProgressCallback | None,
    ) -> StoryPackage:
        age_params = get_age_parameters(request.child_age)
        mood = determine_story_mood(insights)
        self._notify(
            progress_callback,
            "outline:generating",
            child_age=request.child_age,
            page_count=age_params.page_count,
            mood=mood,
        )
        outline = await self._outline_generator.generate(
            request,
            insights,
            age_params=age_params,
            mood=mood,
        )
        character = outline.main_character
        total_pages = len(outline.story_beats)
        self._notify(
            progress_callback,
            "outline:ready",
            character=character.name,
            theme=outline.theme,
            total_pages=total_pages,
        )

        identity = derive_character_identity(character)
        engine = StoryConsistencyEngine(self._consistency_policy)
        engine.initialize(character, request.child_age, request.language, identity=identity)
        self._notify(
            progress_callback,
            "identity:ready",
            hash=identity.hash,
            seed=identity.consistency_seed,
            total_pages=total_pages,
        )

        results = await asyncio.gather(
            *(
                self._build_scene(
                    beat,
                    number,
                    outline,
                    request,
                    age_params,
                    engine,
                    completed,
                    progress_callback,
                )
                for number, beat in enumerate(outline.story_beats, start=1)
            )
        )
        results = sorted(results, key=lambda item: item[0].page_number)

        pages: list[StoryPage] = []
        notices: list[StageNotice] = []
        for scene, scene_notices in results:
            notices.extend(scene_notices)
            for element in scene.visual_elements:
                engine.record_narrative_element("object", element)

            page_prompt = engine.get_visual_prompt(
                scene.page_number,
                total_pages,
                scene.visual_elements,
                scene.emotion,
            )
            pages.append(
                StoryPage(
                    page_number=scene.page_number,
                    text=scene.text,
                    scene_description=_scene_description(character.name, scene),
                    visual_prompt=page_prompt.prompt,
                    seed=page_prompt.seed,
                    emotion=scene.emotion,
                )
            )
            self._notify(
                progress_callback,
                "page:composed",
                page_number=scene.page_number,
                total_pages=total_pages,
            )

        consistency = engine.validate_consistency(pages)
        self._notify(
            progress_callback,
            "consistency:scored",
            score=consistency.score,
            is_consistent=consistency.is_consistent,
        )

        joiner = "ve" if request.language == "tr" else "and"
        package = StoryPackage(
            request=request,
            outline=outline,
            identity=identity,
            pages=pages,
            consistency=consistency,
            title=f"{character.name} {joiner} {outline.theme}",
            notices=notices,
        )

        logger.info(
            "Story complete: %r, %d page(s), score %d, %d degraded page(s)",
            package.title,
            len(pages),
            consistency.score,
            len(package.degraded_pages),
        )
        self._notify(
            progress_callback,
            "pipeline:complete",
            title=package.title,
            total_pages=len(pages),
        )
        return package

    async def _build_scene(
        self,
        beat: str,
        page_number: int,
        outline: StoryOutline,
        request: GenerationRequest,
        age_params: AgeParameters,
        engine: StoryConsistencyEngine,
        completed: dict[int, Scene],
        progress_callback: ProgressCallback | None,
    ) -> tuple[Scene, list[StageNotice]]:
        character = outline.main_character
        notices: list[StageNotice] = []

        expanded = await self._scene_expander.expand(
            beat,
            page_number,
            character,
            age_params,
            language=request.language,
            mood=outline.mood,
            vocabulary=get_vocabulary_level(request.child_age, request.language),
        )
        if expanded.notice is not None:
            notices.append(StageNotice("scene", page_number, str(expanded.notice)))

        guidelines = engine.get_text_guidelines(page_number, expanded.scene.emotion, expanded.scene.text)
        enhanced = await self._dialogue_enhancer.enhance(
            expanded.scene,
            character,
            language=request.language,
            guidelines=guidelines,
        )
        if enhanced.notice is not None:
            notices.append(StageNotice("dialogue", page_number, str(enhanced.notice)))
        for line in enhanced.scene.dialogue:
            engine.record_used_phrase(line)

        completed[page_number] = enhanced.scene
        self._notify(
            progress_callback,
            "scene:ready",
            page_number=page_number,
            degraded=enhanced.scene.degraded,
        )
        return enhanced.scene, notices

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(stage, payload)


def _scene_description(name: str, scene: Scene) -> str:
    return f"{name} - {', '.join(scene.visual_elements)} - {scene.emotion}"


def _load_mapping_file(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported request file format. Use YAML or JSON.")

    if not isinstance(data, Mapping):
        raise ValueError(f"Request file {path} must contain a mapping at the top level.")
    return data
