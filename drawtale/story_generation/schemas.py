"""
Pydantic schemas for the JSON each completion stage is asked to return.

Completions use camelCase keys; snake_case is accepted as well.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ArcPayload(_Payload):
    start: str = ""
    middle: str = ""
    end: str = ""


class CharacterPayload(_Payload):
    name: str = Field(min_length=1)
    species: str = Field(min_length=1, validation_alias=AliasChoices("type", "species"))
    gender: str | None = None
    age: int | None = None
    appearance: str = Field(min_length=1)
    personality: list[str] = Field(default_factory=list)
    speech_style: str = Field(
        default="", validation_alias=AliasChoices("speechStyle", "speech_style")
    )
    arc: ArcPayload = Field(default_factory=ArcPayload)

    @field_validator("personality", mode="before")
    @classmethod
    def _split_personality(cls, value: Any) -> Any:
        return _split_list(value)


class OutlinePayload(_Payload):
    theme: str = Field(min_length=1)
    educational_value: str = Field(
        default="", validation_alias=AliasChoices("educationalValue", "educational_value")
    )
    mood: str | None = None
    main_character: CharacterPayload = Field(
        validation_alias=AliasChoices("mainCharacter", "main_character")
    )
    story_beats: list[str] = Field(validation_alias=AliasChoices("storyBeats", "story_beats"))


class ScenePayload(_Payload):
    text: str = Field(min_length=1)
    emotion: str | None = None
    visual_elements: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("visualElements", "visual_elements")
    )

    @field_validator("visual_elements", mode="before")
    @classmethod
    def _split_elements(cls, value: Any) -> Any:
        if value is None:
            return []
        return _split_list(value)


class DialoguePayload(_Payload):
    text: str = ""
    dialogue: list[str] = Field(default_factory=list)

    @field_validator("dialogue", mode="before")
    @classmethod
    def _coerce_dialogue(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value
