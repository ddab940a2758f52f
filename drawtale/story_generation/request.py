"""
Structured representations of a story request and the upstream drawing analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

_GENDER_ALIASES = {
    "male": "male",
    "m": "male",
    "boy": "male",
    "erkek": "male",
    "female": "female",
    "f": "female",
    "girl": "female",
    "kız": "female",
    "kiz": "female",
}

_LANGUAGE_ALIASES = {
    "tr": "tr",
    "turkish": "tr",
    "türkçe": "tr",
    "en": "en",
    "english": "en",
}


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None

    text = str(value).strip()
    return text or None


def _coerce_age(value: Any) -> int:
    if value is None or value == "":
        raise ValueError("Request data must include the child's age.")

    try:
        age = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected an integer-compatible value for age, got {value!r}") from exc

    if age <= 0:
        raise ValueError(f"Child age must be positive, got {age}.")
    return age


def _normalize_strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()

    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",")]
    elif isinstance(value, Sequence):
        parts = [str(item).strip() for item in value if item is not None]
    else:
        raise TypeError("Expected a string or a sequence of strings.")

    return tuple(filter(None, parts))


def normalize_gender(value: Any) -> str | None:
    text = _coerce_optional_str(value)
    if text is None:
        return None
    return _GENDER_ALIASES.get(text.lower())


def normalize_language(value: Any) -> str:
    text = _coerce_optional_str(value)
    if text is None:
        return "en"
    return _LANGUAGE_ALIASES.get(text.lower(), "en")


@dataclass(frozen=True)
class GenerationRequest:
    """
    Canonical representation of one story request.

    Attributes
    ----------
    child_age:
        Age in years; drives page count, vocabulary and art style.
    language:
        ``"en"`` or ``"tr"``.
    child_name:
        Optional name used in the outline prompt context.
    child_gender:
        ``"male"``/``"female"`` when known; the main character inherits it.
    sensitive_category:
        Guidance catalog key when the drawing shows emotionally sensitive content.
    visual_description:
        What the drawing actually depicts; the main character is derived from it.
    themes:
        Optional theme suggestions; the age bucket's defaults are used otherwise.
    drawing_title:
        Title the child gave the drawing, if any.
    """

    child_age: int
    language: str = "en"
    child_name: str | None = None
    child_gender: str | None = None
    sensitive_category: str | None = None
    visual_description: str | None = None
    themes: tuple[str, ...] = ()
    drawing_title: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerationRequest":
        """
        Build a request from a dict-like object (e.g., parsed JSON/YAML).

        Both snake_case and camelCase keys are accepted.
        """
        sensitive = _pick(data, "sensitive_category", "sensitiveCategory", "concern_type")
        therapeutic = _pick(data, "therapeutic_context", "therapeuticContext")
        if sensitive is None and isinstance(therapeutic, Mapping):
            sensitive = _pick(therapeutic, "concern_type", "concernType")

        return cls(
            child_age=_coerce_age(_pick(data, "child_age", "childAge", "age")),
            language=normalize_language(_pick(data, "language", "story_language")),
            child_name=_coerce_optional_str(_pick(data, "child_name", "childName", "name")),
            child_gender=normalize_gender(_pick(data, "child_gender", "childGender", "gender")),
            sensitive_category=_coerce_optional_str(sensitive),
            visual_description=_coerce_optional_str(
                _pick(data, "visual_description", "visualDescription", "drawing_description")
            ),
            themes=_normalize_strings(_pick(data, "themes")),
            drawing_title=_coerce_optional_str(_pick(data, "drawing_title", "drawingTitle")),
        )

    def context_bullets(self) -> list[str]:
        """
        Produce bullet-friendly lines describing the request, for prompt conditioning.
        """
        bullets: list[str] = [f"Age: {self.child_age}"]

        if self.child_name:
            bullets.append(f"Name: {self.child_name}")

        bullets.append(f"Gender: {self.child_gender or 'not specified'}")

        if self.drawing_title:
            bullets.append(f"Drawing title: {self.drawing_title}")

        bullets.append(f"Story language: {'Turkish' if self.language == 'tr' else 'English'}")
        return bullets

    def summary_for_prompt(self) -> str:
        return "\n".join(f"- {line}" for line in self.context_bullets())

    def as_dict(self) -> dict[str, Any]:
        return {
            "child_age": self.child_age,
            "language": self.language,
            "child_name": self.child_name,
            "child_gender": self.child_gender,
            "sensitive_category": self.sensitive_category,
            "visual_description": self.visual_description,
            "themes": list(self.themes),
            "drawing_title": self.drawing_title,
        }


@dataclass(frozen=True)
class Insight:
    title: str
    summary: str


@dataclass(frozen=True)
class TraumaAssessment:
    has_traumatic_content: bool = False
    content_types: tuple[str, ...] = ()
    severity: str | None = None


@dataclass(frozen=True)
class AnalysisInsights:
    """
    Read-only view of the drawing analysis consumed by the story pipeline.
    """

    insights: tuple[Insight, ...] = ()
    risk_flags: tuple[str, ...] = ()
    trauma: TraumaAssessment | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisInsights":
        insights: list[Insight] = []
        for item in data.get("insights") or ():
            if isinstance(item, Mapping):
                summary = _coerce_optional_str(item.get("summary")) or ""
                title = _coerce_optional_str(item.get("title")) or ""
                if summary or title:
                    insights.append(Insight(title=title, summary=summary))
            elif item is not None:
                insights.append(Insight(title="", summary=str(item).strip()))

        risk_flags: list[str] = []
        for flag in _pick(data, "risk_flags", "riskFlags") or ():
            if isinstance(flag, Mapping):
                label = _coerce_optional_str(flag.get("type") or flag.get("summary"))
            else:
                label = _coerce_optional_str(flag)
            if label:
                risk_flags.append(label)

        trauma_data = _pick(data, "trauma", "trauma_assessment", "traumaAssessment")
        trauma: TraumaAssessment | None = None
        if isinstance(trauma_data, Mapping):
            trauma = TraumaAssessment(
                has_traumatic_content=bool(
                    _pick(trauma_data, "has_traumatic_content", "hasTraumaticContent")
                ),
                content_types=_normalize_strings(
                    _pick(trauma_data, "content_types", "contentTypes")
                ),
                severity=_coerce_optional_str(trauma_data.get("severity")),
            )

        return cls(insights=tuple(insights), risk_flags=tuple(risk_flags), trauma=trauma)

    def summary_for_prompt(self) -> str:
        lines = [
            f"{insight.title}: {insight.summary}" if insight.title else insight.summary
            for insight in self.insights
        ]
        return "\n".join(lines) or "No analysis insights were provided."
