"""
DrawTale package turning a child's drawing analysis into an illustrated story plan.
"""

from .pipeline import (
    ConsistencyPolicy,
    DrawTaleOrchestrator,
    StoryConsistencyEngine,
    StoryPackage,
)
from .story_generation import AnalysisInsights, GenerationRequest

__all__ = [
    "AnalysisInsights",
    "ConsistencyPolicy",
    "DrawTaleOrchestrator",
    "GenerationRequest",
    "StoryConsistencyEngine",
    "StoryPackage",
]
