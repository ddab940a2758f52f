"""
Named failure modes surfaced by the DrawTale pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from drawtale.pipeline.consistency import ConsistencyCheckResult


class DrawTaleError(Exception):
    """Base class for every error raised by the package."""


class MalformedCompletionPayload(DrawTaleError):
    """
    A completion response could not be decoded into the structure a stage needs.

    Stage 1 escalates this into :class:`OutlineGenerationFailed`; stages 2 and 3
    absorb it and degrade the affected page.
    """

    def __init__(self, stage: str, reason: str, raw_text: str = "") -> None:
        super().__init__(f"[{stage}] {reason}")
        self.stage = stage
        self.reason = reason
        self.raw_text = raw_text


class OutlineGenerationFailed(DrawTaleError):
    """Fatal: no usable outline, so no character identity can be derived."""


class SceneExpansionDegraded(DrawTaleError):
    """Non-fatal: a page fell back to its raw beat text."""

    def __init__(self, page_number: int, reason: str) -> None:
        super().__init__(f"Scene expansion degraded on page {page_number}: {reason}")
        self.page_number = page_number
        self.reason = reason


class DialogueEnhancementSkipped(DrawTaleError):
    """Non-fatal: a page kept its scene text without added dialogue."""

    def __init__(self, page_number: int, reason: str) -> None:
        super().__init__(f"Dialogue enhancement skipped on page {page_number}: {reason}")
        self.page_number = page_number
        self.reason = reason


class ConsistencyThresholdNotMet(DrawTaleError):
    """Advisory: raised only when a caller asks a low-scoring result to fail loudly."""

    def __init__(self, result: "ConsistencyCheckResult") -> None:
        super().__init__(
            f"Consistency score {result.score} is below the pass threshold "
            f"({len(result.issues)} issue(s))."
        )
        self.result = result


class StoryGenerationAborted(DrawTaleError):
    """The request ran past its deadline; carries whatever scenes had completed."""

    def __init__(self, message: str, partial_scenes: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.partial_scenes = tuple(partial_scenes)


class CircuitOpenError(DrawTaleError):
    """The named circuit is open and calls fail fast until the reset timeout passes."""

    def __init__(self, name: str, retry_in: float) -> None:
        super().__init__(f"Circuit breaker [{name}] is open. Retry in {retry_in:.0f}s")
        self.name = name
        self.retry_in = retry_in
