"""Tests for request and analysis parsing."""

import pytest

from drawtale.story_generation.request import (
    AnalysisInsights,
    GenerationRequest,
    normalize_gender,
    normalize_language,
)


class TestGenerationRequest:
    """Tests for GenerationRequest.from_mapping."""

    def test_accepts_camel_case_keys(self):
        """Front-end style keys map onto the canonical fields."""
        request = GenerationRequest.from_mapping(
            {
                "childAge": "6",
                "language": "Türkçe",
                "childName": " Mert ",
                "childGender": "erkek",
                "visualDescription": "A brown bear in a blue vest",
                "themes": "courage, friendship",
                "drawingTitle": "My Bear",
            }
        )

        assert request.child_age == 6
        assert request.language == "tr"
        assert request.child_name == "Mert"
        assert request.child_gender == "male"
        assert request.themes == ("courage", "friendship")
        assert request.drawing_title == "My Bear"

    def test_sensitive_category_from_therapeutic_context(self):
        """A nested concern type is used when no top-level category is set."""
        request = GenerationRequest.from_mapping(
            {"age": 7, "therapeuticContext": {"concernType": "bullying"}}
        )
        assert request.sensitive_category == "bullying"

    @pytest.mark.parametrize("value", [None, "", 0, -3, "abc"])
    def test_invalid_age_raises(self, value):
        """Missing, non-numeric and non-positive ages are rejected."""
        with pytest.raises(ValueError):
            GenerationRequest.from_mapping({"child_age": value})

    def test_summary_mentions_language_and_gender(self):
        request = GenerationRequest(child_age=4, child_name="Ada")
        summary = request.summary_for_prompt()
        assert "- Name: Ada" in summary
        assert "Gender: not specified" in summary
        assert "Story language: English" in summary

    def test_as_dict_lists_themes(self):
        request = GenerationRequest(child_age=4, themes=("sharing",))
        assert request.as_dict()["themes"] == ["sharing"]


@pytest.mark.parametrize(
    "raw, expected",
    [("Girl", "female"), ("kız", "female"), ("M", "male"), ("robot", None), (None, None)],
)
def test_normalize_gender(raw, expected):
    assert normalize_gender(raw) == expected


@pytest.mark.parametrize("raw, expected", [("TR", "tr"), ("english", "en"), ("de", "en"), (None, "en")])
def test_normalize_language(raw, expected):
    assert normalize_language(raw) == expected


class TestAnalysisInsights:
    """Tests for AnalysisInsights.from_mapping."""

    def test_parses_insights_flags_and_trauma(self):
        """Strings and mappings are both accepted for insights and flags."""
        insights = AnalysisInsights.from_mapping(
            {
                "insights": [{"title": "Mood", "summary": "Calm colours"}, "Plain note", None],
                "riskFlags": ["isolation", {"summary": "dark scribbles"}, {}],
                "traumaAssessment": {
                    "hasTraumaticContent": True,
                    "contentTypes": ["war"],
                    "severity": "medium",
                },
            }
        )

        assert [item.summary for item in insights.insights] == ["Calm colours", "Plain note"]
        assert insights.risk_flags == ("isolation", "dark scribbles")
        assert insights.trauma.has_traumatic_content
        assert insights.trauma.content_types == ("war",)
        assert insights.trauma.severity == "medium"

    def test_empty_summary_has_placeholder(self):
        assert AnalysisInsights().summary_for_prompt() == "No analysis insights were provided."

    def test_summary_prefixes_titles(self):
        insights = AnalysisInsights.from_mapping({"insights": [{"title": "Mood", "summary": "Calm"}]})
        assert insights.summary_for_prompt() == "Mood: Calm"
