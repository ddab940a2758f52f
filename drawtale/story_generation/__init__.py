"""
Story generation stages for turning drawing insights into a page-by-page narrative.
"""

from .dialogue_enhancer import DialogueEnhancer
from .guidance import GuidanceCatalog, GuidanceEntry, load_guidance_catalog
from .models import (
    CharacterArc,
    CharacterProfile,
    Scene,
    StageOutcome,
    StoryOutline,
    StoryPage,
)
from .outline_generator import OutlineGenerator
from .policy import (
    AgeParameters,
    StoryStyle,
    VocabularyLevel,
    determine_story_mood,
    get_age_parameters,
    get_story_style,
    get_vocabulary_level,
)
from .prompting import StoryPrompt
from .request import AnalysisInsights, GenerationRequest, Insight, TraumaAssessment
from .scene_expander import SceneExpander

__all__ = [
    "GenerationRequest",
    "AnalysisInsights",
    "Insight",
    "TraumaAssessment",
    "AgeParameters",
    "VocabularyLevel",
    "StoryStyle",
    "get_age_parameters",
    "get_vocabulary_level",
    "get_story_style",
    "determine_story_mood",
    "GuidanceCatalog",
    "GuidanceEntry",
    "load_guidance_catalog",
    "CharacterArc",
    "CharacterProfile",
    "StoryOutline",
    "Scene",
    "StageOutcome",
    "StoryPage",
    "StoryPrompt",
    "OutlineGenerator",
    "SceneExpander",
    "DialogueEnhancer",
]
