"""
End-to-end orchestration for DrawTale story generation.
"""

from .consistency import (
    ConsistencyCheckResult,
    ConsistencyPolicy,
    StoryConsistencyEngine,
)
from .pipeline import DrawTaleOrchestrator, StageNotice, StoryPackage

__all__ = [
    "ConsistencyCheckResult",
    "ConsistencyPolicy",
    "StoryConsistencyEngine",
    "DrawTaleOrchestrator",
    "StageNotice",
    "StoryPackage",
]
