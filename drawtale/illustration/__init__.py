"""
Character identity and image prompt composition for story illustrations.
"""

from .identity import CharacterIdentity, derive_character_identity, page_seed
from .prompting import PromptLintReport, compose_visual_prompt, lint_visual_prompt

__all__ = [
    "CharacterIdentity",
    "derive_character_identity",
    "page_seed",
    "compose_visual_prompt",
    "lint_visual_prompt",
    "PromptLintReport",
]
